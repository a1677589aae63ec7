"""
Per-vendor call budgets shared by every validator process
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from ..db import SessionLocal
from ..models import QuotaCounter
from ..utils.clock import utcnow
from ..vendors import VendorSettings, get_vendor_settings
from .prometheus_metrics import prometheus_metrics

logger = logging.getLogger("threatfeed.quota")


def period_key(period: str, now: datetime) -> str:
    """Calendar bucket in UTC: YYYY-MM-DD for daily quotas, YYYY-MM for monthly ones."""
    if period == "month":
        return now.strftime("%Y-%m")
    return now.strftime("%Y-%m-%d")


class QuotaManager:
    """Transactional quota counters keyed by (vendor, period_key).

    A counter row only exists for periods that saw calls, so a new day or
    month reads as zero used without any reset job.
    """

    def __init__(self, session_factory=None, clock: Callable[[], datetime] = utcnow,
                 settings_loader: Callable[[str], VendorSettings] = get_vendor_settings):
        self.session_factory = session_factory or SessionLocal
        self.clock = clock
        self.settings_loader = settings_loader

    def _current(self, vendor: str):
        settings = self.settings_loader(vendor)
        return settings, period_key(settings.quota_period, self.clock())

    def _used(self, session, vendor: str, key: str) -> int:
        used = session.execute(
            select(QuotaCounter.used_count).where(
                QuotaCounter.vendor == vendor, QuotaCounter.period_key == key)
        ).scalar_one_or_none()
        return used or 0

    def remaining(self, vendor: str) -> int:
        settings, key = self._current(vendor)
        with self.session_factory() as session:
            used = self._used(session, vendor, key)
        remaining = max(0, settings.quota_limit - used)
        prometheus_metrics.set_quota_remaining(vendor, remaining)
        return remaining

    def increment(self, vendor: str, n: int = 1) -> None:
        if n < 0:
            raise ValueError("quota increment must not be negative")
        if n == 0:
            return
        settings, key = self._current(vendor)
        stmt = (
            update(QuotaCounter)
            .where(QuotaCounter.vendor == vendor, QuotaCounter.period_key == key)
            .values(used_count=QuotaCounter.used_count + n, limit=settings.quota_limit)
        )
        for _ in range(3):
            with self.session_factory() as session:
                result = session.execute(stmt)
                if result.rowcount:
                    session.commit()
                    return
                session.add(QuotaCounter(vendor=vendor, period=settings.quota_period,
                                         period_key=key, used_count=n, limit=settings.quota_limit))
                try:
                    session.commit()
                    return
                except IntegrityError:
                    # another process created the period row first; add to it instead
                    session.rollback()
        raise RuntimeError(f"could not record quota usage for {vendor}")

    def usage(self, vendor: str) -> Dict[str, object]:
        settings, key = self._current(vendor)
        with self.session_factory() as session:
            used = self._used(session, vendor, key)
        return {
            "vendor": vendor,
            "period": settings.quota_period,
            "period_key": key,
            "used": used,
            "limit": settings.quota_limit,
            "remaining": max(0, settings.quota_limit - used),
        }

    def cleanup_stale_periods(self, vendor: Optional[str] = None) -> int:
        """Delete counters for periods other than each vendor's current one."""
        now = self.clock()
        removed = 0
        with self.session_factory() as session:
            vendors = [vendor] if vendor else list(
                session.execute(select(QuotaCounter.vendor).distinct()).scalars())
            for name in vendors:
                try:
                    settings = self.settings_loader(name)
                except KeyError:
                    logger.warning("Dropping quota rows for unknown vendor %s", name)
                    removed += session.execute(
                        delete(QuotaCounter).where(QuotaCounter.vendor == name)).rowcount
                    continue
                current = period_key(settings.quota_period, now)
                removed += session.execute(
                    delete(QuotaCounter).where(QuotaCounter.vendor == name,
                                               QuotaCounter.period_key != current)
                ).rowcount
            session.commit()
        if removed:
            logger.info("Removed %d stale quota counters", removed)
        return removed
