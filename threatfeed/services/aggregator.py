"""
Collapse raw per-source rows into validation candidates.

Rows are read with keyset pagination on (indicator, source), so a run holds
at most one page of raw rows in memory no matter how large the table is.
"""

from typing import Dict, Iterator, List, Optional

from sqlalchemy import and_, or_, select

from .. import config
from ..db import SessionLocal
from ..models import MergedIndicator, RawIndicator
from ..schemas.indicator import AggregatedCandidate
from ..vendors import VENDOR_NAMES


def _fetch_page(session, kind: str, after, page_size: int):
    stmt = select(RawIndicator.indicator, RawIndicator.source).where(
        RawIndicator.kind == kind,
        RawIndicator.removed_at.is_(None),
    )
    if after is not None:
        last_indicator, last_source = after
        stmt = stmt.where(or_(
            RawIndicator.indicator > last_indicator,
            and_(RawIndicator.indicator == last_indicator, RawIndicator.source > last_source),
        ))
    stmt = stmt.order_by(RawIndicator.indicator, RawIndicator.source).limit(page_size)
    return session.execute(stmt).all()


def _candidate(indicator: str, kind: str, sources) -> AggregatedCandidate:
    ordered = sorted(set(sources))
    return AggregatedCandidate(indicator=indicator, kind=kind, sources=ordered,
                               source_count=len(ordered))


def iter_candidate_pages(kind: str, page_size: Optional[int] = None,
                         session_factory=None) -> Iterator[List[AggregatedCandidate]]:
    page_size = page_size or config.AGGREGATOR_PAGE_SIZE
    factory = session_factory or SessionLocal
    after = None
    current_indicator = None
    current_sources: List[str] = []
    with factory() as session:
        while True:
            rows = _fetch_page(session, kind, after, page_size)
            if not rows:
                break
            page: List[AggregatedCandidate] = []
            for indicator, source in rows:
                if indicator != current_indicator:
                    if current_indicator is not None:
                        page.append(_candidate(current_indicator, kind, current_sources))
                    current_indicator, current_sources = indicator, []
                current_sources.append(source)
            after = (rows[-1].indicator, rows[-1].source)
            # the trailing group may continue on the next page
            if page:
                yield page
            if len(rows) < page_size:
                break
    if current_indicator is not None:
        yield [_candidate(current_indicator, kind, current_sources)]


def get_candidates(kind: str, limit: Optional[int] = None, page_size: Optional[int] = None,
                   session_factory=None) -> List[AggregatedCandidate]:
    out: List[AggregatedCandidate] = []
    for page in iter_candidate_pages(kind, page_size=page_size, session_factory=session_factory):
        for candidate in page:
            out.append(candidate)
            if limit is not None and len(out) >= limit:
                return out
    return out


def _checked_by(session, vendor: str, kind: str, indicators: List[str]) -> Dict[str, int]:
    """Source count recorded on each merged row this vendor has already checked."""
    checked_col = getattr(MergedIndicator, f"{vendor}_checked")
    rows = session.execute(
        select(MergedIndicator.indicator, MergedIndicator.source_count).where(
            MergedIndicator.kind == kind,
            MergedIndicator.indicator.in_(indicators),
            checked_col.is_(True),
        )
    )
    return {indicator: source_count or 0 for indicator, source_count in rows}


def select_candidates(kind: str, vendor: str, limit: int, recheck: bool = False,
                      page_size: Optional[int] = None,
                      session_factory=None) -> List[AggregatedCandidate]:
    """Up to ``limit`` candidates of ``kind`` this vendor has not looked at yet.

    A checked indicator comes back once it has gained sources since its
    merged row was written, so the new corroboration reaches its confidence.
    With ``recheck`` every candidate is eligible, in indicator order.
    """
    if vendor not in VENDOR_NAMES:
        raise ValueError(f"Unknown vendor: {vendor}")
    if limit <= 0:
        return []
    factory = session_factory or SessionLocal
    out: List[AggregatedCandidate] = []
    for page in iter_candidate_pages(kind, page_size=page_size, session_factory=factory):
        if not recheck:
            with factory() as session:
                done = _checked_by(session, vendor, kind, [c.indicator for c in page])
            page = [c for c in page if c.indicator not in done or c.source_count > done[c.indicator]]
        for candidate in page:
            out.append(candidate)
            if len(out) >= limit:
                return out
    return out
