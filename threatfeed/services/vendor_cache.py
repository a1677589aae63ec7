"""
Durable per-vendor TTL cache of lookup results
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from ..db import SessionLocal
from ..models import VendorCacheEntry
from ..utils.clock import utcnow

logger = logging.getLogger("threatfeed.vendor_cache")


class VendorCache:
    def __init__(self, vendor: str, ttl_seconds: int, session_factory=None,
                 clock: Callable[[], datetime] = utcnow):
        self.vendor = vendor
        self.ttl_seconds = ttl_seconds
        self.session_factory = session_factory or SessionLocal
        self.clock = clock

    def get(self, indicator: str, kind: str) -> Optional[VendorCacheEntry]:
        """Return the entry only while it is still fresh."""
        if self.ttl_seconds <= 0:
            return None
        with self.session_factory() as session:
            return session.execute(
                select(VendorCacheEntry).where(
                    VendorCacheEntry.vendor == self.vendor,
                    VendorCacheEntry.indicator == indicator,
                    VendorCacheEntry.kind == kind,
                    VendorCacheEntry.expires_at > self.clock(),
                )
            ).scalar_one_or_none()

    def put(self, indicator: str, kind: str, score: Optional[float], verdict: Optional[str] = None,
            raw_payload: Optional[Dict[str, Any]] = None) -> None:
        if self.ttl_seconds <= 0:
            return
        now = self.clock()
        values = {
            "score": score,
            "verdict": verdict,
            "raw_payload": raw_payload,
            "checked_at": now,
            "expires_at": now + timedelta(seconds=self.ttl_seconds),
        }
        for _ in range(2):
            with self.session_factory() as session:
                entry = session.execute(
                    select(VendorCacheEntry).where(
                        VendorCacheEntry.vendor == self.vendor,
                        VendorCacheEntry.indicator == indicator,
                        VendorCacheEntry.kind == kind,
                    )
                ).scalar_one_or_none()
                if entry is None:
                    session.add(VendorCacheEntry(vendor=self.vendor, indicator=indicator,
                                                 kind=kind, **values))
                else:
                    for key, value in values.items():
                        setattr(entry, key, value)
                try:
                    session.commit()
                    return
                except IntegrityError:
                    session.rollback()
        logger.warning("Could not cache %s result for %s", self.vendor, indicator)

    def cleanup_expired(self) -> int:
        with self.session_factory() as session:
            removed = session.execute(
                delete(VendorCacheEntry).where(
                    VendorCacheEntry.vendor == self.vendor,
                    VendorCacheEntry.expires_at <= self.clock(),
                )
            ).rowcount
            session.commit()
        if removed:
            logger.info("Expired %d %s cache entries", removed, self.vendor)
        return removed
