"""
Indicator store: the read/write primitives shared by validators, the feed and the CLI
"""

import ipaddress
import logging
import secrets
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Set

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from ..db import SessionLocal
from ..models import FeedAccessLog, FeedToken, INDICATOR_KINDS, MergedIndicator, RawIndicator, TrustedDomain
from ..utils.clock import utcnow
from . import aggregator, merger

logger = logging.getLogger("threatfeed.store")

# Feed "type" query values and the indicator kind each one publishes
FEED_TYPES: Dict[str, str] = {"ipv4": "ipv4", "domains": "domain"}


def normalize_indicator(indicator: str, kind: str) -> str:
    """Canonical form of an indicator; raises ValueError when it does not fit its kind."""
    if kind not in INDICATOR_KINDS:
        raise ValueError(f"Unsupported kind: {kind}")
    value = (indicator or "").strip()
    if not value:
        raise ValueError("Empty indicator")
    if kind == "ipv4":
        try:
            return str(ipaddress.IPv4Address(value))
        except ipaddress.AddressValueError:
            raise ValueError(f"Not an IPv4 address: {value}")
    value = value.lower().rstrip(".")
    if " " in value or "/" in value or "." not in value:
        raise ValueError(f"Not a domain: {value}")
    return value


def add_raw_indicators(rows: Iterable[Mapping], session_factory=None) -> int:
    """Upsert raw rows by (indicator, kind, source); returns how many were written."""
    factory = session_factory or SessionLocal
    written = 0
    now = utcnow()
    with factory() as session:
        for row in rows:
            try:
                kind = row["kind"]
                indicator = normalize_indicator(row["indicator"], kind)
            except (KeyError, ValueError) as e:
                logger.warning("Skipping raw indicator: %s", e)
                continue
            source = row["source"]
            first_seen = row.get("first_seen") or now
            last_seen = row.get("last_seen") or now
            existing = session.execute(
                select(RawIndicator).where(
                    RawIndicator.indicator == indicator,
                    RawIndicator.kind == kind,
                    RawIndicator.source == source,
                )
            ).scalar_one_or_none()
            if existing is None:
                session.add(RawIndicator(indicator=indicator, kind=kind, source=source,
                                         first_seen=first_seen, last_seen=last_seen))
                # keep the pending row visible to later rows in this batch
                session.flush()
            else:
                existing.last_seen = max(existing.last_seen, last_seen)
                existing.removed_at = None
            written += 1
        session.commit()
    return written


def tombstone_raw_indicator(indicator: str, kind: str, source: str, session_factory=None) -> bool:
    factory = session_factory or SessionLocal
    indicator = normalize_indicator(indicator, kind)
    with factory() as session:
        result = session.execute(
            update(RawIndicator)
            .where(RawIndicator.indicator == indicator, RawIndicator.kind == kind,
                   RawIndicator.source == source, RawIndicator.removed_at.is_(None))
            .values(removed_at=utcnow())
        )
        session.commit()
        return bool(result.rowcount)


def get_candidates(kind: str, limit: Optional[int] = None, session_factory=None):
    return aggregator.get_candidates(kind, limit=limit, session_factory=session_factory)


def merge_validator_result(indicator: str, kind: str, vendor: str, confidence: Optional[float],
                           fields: Mapping, source_count: Optional[int] = None,
                           session_factory=None) -> MergedIndicator:
    return merger.merge_validator_result(indicator, kind, vendor, confidence, fields,
                                         source_count=source_count, session_factory=session_factory)


def _feed_query(kind: str, threshold: int):
    return (
        select(MergedIndicator)
        .where(MergedIndicator.kind == kind,
               MergedIndicator.confidence >= threshold,
               MergedIndicator.whitelisted.is_(False))
        .order_by(MergedIndicator.indicator)
    )


def get_feed_indicators(kind: str, threshold: int, session_factory=None) -> List[str]:
    factory = session_factory or SessionLocal
    stmt = _feed_query(kind, threshold).with_only_columns(MergedIndicator.indicator)
    with factory() as session:
        return list(session.execute(stmt).scalars())


def get_feed_rows(kind: str, threshold: int, session_factory=None) -> List[Dict]:
    factory = session_factory or SessionLocal
    with factory() as session:
        return [
            {
                "indicator": row.indicator,
                "kind": row.kind,
                "confidence": row.confidence,
                "source_count": row.source_count,
                "last_validated": row.last_validated.isoformat() if row.last_validated else None,
            }
            for row in session.execute(_feed_query(kind, threshold)).scalars()
        ]


def get_merged_indicator(indicator: str, kind: str, session_factory=None) -> Optional[MergedIndicator]:
    factory = session_factory or SessionLocal
    with factory() as session:
        return session.execute(
            select(MergedIndicator).where(MergedIndicator.indicator == indicator,
                                          MergedIndicator.kind == kind)
        ).scalar_one_or_none()


# Feed tokens

def create_feed_token(feed_type: Optional[str] = None, customer_id: Optional[str] = None,
                      session_factory=None) -> FeedToken:
    if feed_type is not None and feed_type not in FEED_TYPES:
        raise ValueError(f"Unsupported feed type: {feed_type}")
    factory = session_factory or SessionLocal
    token = FeedToken(token=secrets.token_urlsafe(24), enabled=True, type=feed_type,
                      customer_id=customer_id, created_at=utcnow())
    with factory() as session:
        session.add(token)
        session.commit()
    return token


def disable_feed_token(token: str, session_factory=None) -> bool:
    factory = session_factory or SessionLocal
    with factory() as session:
        result = session.execute(
            update(FeedToken).where(FeedToken.token == token).values(enabled=False))
        session.commit()
        return bool(result.rowcount)


def get_active_token(token: str, session_factory=None) -> Optional[FeedToken]:
    factory = session_factory or SessionLocal
    with factory() as session:
        return session.execute(
            select(FeedToken).where(FeedToken.token == token, FeedToken.enabled.is_(True))
        ).scalar_one_or_none()


def log_feed_access(token: str, kind: str, ip: Optional[str], ua: Optional[str],
                    session_factory=None, accessed_at: Optional[datetime] = None) -> bool:
    """Record a feed download; a failure is logged and never reaches the caller."""
    factory = session_factory or SessionLocal
    try:
        with factory() as session:
            session.add(FeedAccessLog(token=token, kind=kind, ip=ip, ua=(ua or "")[:512],
                                      accessed_at=accessed_at or utcnow()))
            session.commit()
        return True
    except SQLAlchemyError as e:
        logger.error("Failed to log feed access: %s", e)
        return False


# Trusted domains

def import_trusted_domains(source: str, domains: Iterable[str], session_factory=None) -> int:
    """Add domains from a ranked top list; the iteration order is the rank."""
    factory = session_factory or SessionLocal
    now = utcnow()
    imported = 0
    with factory() as session:
        known = set(session.execute(
            select(TrustedDomain.domain).where(TrustedDomain.source == source)).scalars())
        for rank, domain in enumerate(domains, start=1):
            try:
                value = normalize_indicator(domain, "domain")
            except ValueError:
                continue
            if value in known:
                continue
            known.add(value)
            session.add(TrustedDomain(domain=value, source=source, rank=rank, imported_at=now))
            imported += 1
        session.commit()
    logger.info("Imported %d trusted domains from %s", imported, source)
    return imported


def trusted_domain_sources(session_factory=None) -> Dict[str, str]:
    """Map of trusted domain to the first source that listed it."""
    factory = session_factory or SessionLocal
    out: Dict[str, str] = {}
    with factory() as session:
        rows = session.execute(
            select(TrustedDomain.domain, TrustedDomain.source)
            .order_by(TrustedDomain.source, TrustedDomain.rank)
        ).all()
    for domain, source in rows:
        out.setdefault(domain, source)
    return out


def load_trusted_domains(session_factory=None) -> Set[str]:
    return set(trusted_domain_sources(session_factory=session_factory))
