"""
Confidence merger: folds one vendor's verdict into the merged indicator row.

Every merge is a read-modify-write scoped to a single (indicator, kind) row.
Lost updates are prevented by the row's ``version`` column (SQLAlchemy
``version_id_col``): an UPDATE only lands if the version it read is still
current, otherwise ``StaleDataError`` is raised and the whole merge is
replayed against fresh state. Backends that support it additionally take a
row lock with ``SELECT ... FOR UPDATE``.
"""

import logging
import random
import time
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .. import config
from ..db import SessionLocal
from ..errors import MergeConflict
from ..models import VENDOR_FIELD_NAMES, MergedIndicator
from ..utils.clock import utcnow
from ..vendors import VENDOR_NAMES
from .prometheus_metrics import prometheus_metrics

logger = logging.getLogger("threatfeed.merger")

_VENDOR_FIELDS = frozenset(VENDOR_FIELD_NAMES)


def source_policy(source_count: Optional[int]) -> int:
    """Base confidence earned by corroboration across independent sources."""
    n = source_count or 0
    if n >= 3:
        return 100
    if n == 2:
        return 75
    if n == 1:
        return 60
    return 0


def vendor_policy(confidence: Optional[float]) -> int:
    if confidence is None:
        return 0
    return int(round(max(0.0, min(100.0, float(confidence)))))


def combine_confidence(current: Optional[int], source_count: Optional[int],
                       vendor_confidence: Optional[float], whitelisted: bool = False) -> int:
    if whitelisted:
        return 0
    return max(current or 0, source_policy(source_count), vendor_policy(vendor_confidence))


def validate_fields(fields: Mapping[str, Any]) -> None:
    unknown = sorted(set(fields) - _VENDOR_FIELDS)
    if unknown:
        raise ValueError(f"Unknown vendor fields: {', '.join(unknown)}")


def _new_row(indicator: str, kind: str) -> MergedIndicator:
    row = MergedIndicator(indicator=indicator, kind=kind, confidence=0, source_count=0,
                          whitelisted=False, whitelist_source=None)
    for column in VENDOR_FIELD_NAMES:
        setattr(row, column, False if column.endswith("_checked") else None)
    return row


def _locked_select(session, indicator: str, kind: str):
    stmt = select(MergedIndicator).where(
        MergedIndicator.indicator == indicator,
        MergedIndicator.kind == kind,
    )
    if session.get_bind().dialect.name != "sqlite":
        stmt = stmt.with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def _set_if_changed(row: MergedIndicator, attr: str, value: Any) -> bool:
    if getattr(row, attr) == value:
        return False
    setattr(row, attr, value)
    return True


def _is_lock_error(exc: OperationalError) -> bool:
    text = str(exc.orig if exc.orig is not None else exc).lower()
    return "database is locked" in text or "deadlock" in text or "could not serialize" in text


def _run_atomic(indicator: str, kind: str, mutate: Callable[[MergedIndicator, bool], bool],
                session_factory=None, max_attempts: Optional[int] = None,
                sleep: Callable[[float], None] = time.sleep) -> MergedIndicator:
    """Replay ``mutate`` against the current row until its write lands.

    ``mutate(row, created)`` applies changes in place and returns whether
    anything changed. Unchanged rows are left alone: no UPDATE, no version
    bump, no new ``last_validated``.
    """
    factory = session_factory or SessionLocal
    attempts = max_attempts or config.MERGE_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        session = factory()
        try:
            row = _locked_select(session, indicator, kind)
            created = row is None
            if created:
                row = _new_row(indicator, kind)
                session.add(row)
            changed = mutate(row, created)
            if created or changed:
                row.last_validated = utcnow()
                session.commit()
            return row
        except StaleDataError:
            session.rollback()
            reason = "stale"
        except IntegrityError:
            session.rollback()
            reason = "insert_race"
        except OperationalError as e:
            session.rollback()
            if not _is_lock_error(e):
                raise
            reason = "locked"
        finally:
            session.close()

        prometheus_metrics.increment_merge_retry(reason)
        logger.debug("Merge retry %d/%d for %s/%s (%s)", attempt, attempts, kind, indicator, reason)
        if attempt < attempts:
            sleep(random.uniform(0.005, 0.02 * attempt))

    prometheus_metrics.increment_merge_conflict()
    raise MergeConflict(f"merge for {kind}:{indicator} did not settle after {attempts} attempts")


def merge_validator_result(indicator: str, kind: str, vendor: str, confidence: Optional[float],
                           fields: Mapping[str, Any], *, source_count: Optional[int] = None,
                           session_factory=None, max_attempts: Optional[int] = None,
                           sleep: Callable[[float], None] = time.sleep) -> MergedIndicator:
    """Merge one vendor's contribution into the (indicator, kind) row.

    Only keys present in ``fields`` are written. Confidence becomes
    ``max(current, source_policy(source_count), vendor_policy(confidence))``
    and therefore never drops, except that a whitelisted row stays at 0.
    Raises ``ValueError`` for an unknown vendor or field and
    ``MergeConflict`` if concurrent writers keep winning.
    """
    if vendor not in VENDOR_NAMES:
        raise ValueError(f"Unknown vendor: {vendor}")
    fields = dict(fields or {})
    validate_fields(fields)

    def mutate(row: MergedIndicator, created: bool) -> bool:
        changed = False
        for key, value in fields.items():
            changed |= _set_if_changed(row, key, value)
        if source_count is not None and source_count > (row.source_count or 0):
            changed |= _set_if_changed(row, "source_count", source_count)
        new_confidence = combine_confidence(row.confidence, row.source_count, confidence,
                                            whitelisted=bool(row.whitelisted))
        changed |= _set_if_changed(row, "confidence", new_confidence)
        return changed

    return _run_atomic(indicator, kind, mutate, session_factory=session_factory,
                       max_attempts=max_attempts, sleep=sleep)


def apply_whitelist(indicator: str, kind: str, source: str, *, session_factory=None,
                    max_attempts: Optional[int] = None,
                    sleep: Callable[[float], None] = time.sleep) -> MergedIndicator:
    """Force an indicator to confidence 0 because a trusted list vouches for it."""

    def mutate(row: MergedIndicator, created: bool) -> bool:
        changed = _set_if_changed(row, "whitelisted", True)
        changed |= _set_if_changed(row, "whitelist_source", source)
        changed |= _set_if_changed(row, "confidence", 0)
        return changed

    row = _run_atomic(indicator, kind, mutate, session_factory=session_factory,
                      max_attempts=max_attempts, sleep=sleep)
    logger.info("Whitelisted %s %s via %s", kind, indicator, source)
    return row


def merged_snapshot(row: MergedIndicator) -> Dict[str, Any]:
    """Plain dict of a merged row, handy for comparing before/after states."""
    data = row.to_dict()
    data["version"] = row.version
    return data
