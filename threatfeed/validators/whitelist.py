"""
Trusted top-domain override.

Not a reputation vendor: it makes no external calls and spends no quota. Any
domain candidate or merged domain that appears in ``trusted_domains`` is
forced to confidence 0 through the merger's whitelist operation.
"""

import logging
import time
from typing import Callable, Optional

from sqlalchemy import select

from ..db import SessionLocal
from ..errors import MergeConflict
from ..models import MergedIndicator
from ..schemas.indicator import ValidatorRunResult
from ..services import aggregator, merger, store
from ..services.prometheus_metrics import prometheus_metrics
from ..utils.clock import utcnow

logger = logging.getLogger("threatfeed.validators.whitelist")


class WhitelistValidator:
    name = "whitelist"
    kinds = ("domain",)

    def __init__(self, session_factory=None, clock: Callable = utcnow, page_size: Optional[int] = None,
                 **_ignored):
        self.session_factory = session_factory
        self.clock = clock
        self.page_size = page_size

    def _targets(self, trusted):
        """Trusted domains seen in raw candidates or merged rows, not yet whitelisted."""
        hits = set()
        for page in aggregator.iter_candidate_pages("domain", page_size=self.page_size,
                                                    session_factory=self.session_factory):
            hits.update(c.indicator for c in page if c.indicator in trusted)
        factory = self.session_factory or SessionLocal
        with factory() as session:
            rows = session.execute(
                select(MergedIndicator.indicator, MergedIndicator.whitelisted)
                .where(MergedIndicator.kind == "domain")
            ).all()
        already = {indicator for indicator, whitelisted in rows if whitelisted}
        hits.update(indicator for indicator, _ in rows if indicator in trusted)
        return sorted(hits - already)

    def run(self) -> ValidatorRunResult:
        result = ValidatorRunResult(vendor=self.name, started_at=self.clock())
        started = time.monotonic()
        sources = store.trusted_domain_sources(session_factory=self.session_factory)
        targets = self._targets(sources) if sources else []
        if not targets:
            result.status = "no_candidates"
        for domain in targets:
            try:
                merger.apply_whitelist(domain, "domain", sources[domain],
                                       session_factory=self.session_factory)
                result.validated += 1
            except MergeConflict as e:
                logger.error("Could not whitelist %s: %s", domain, e)
                result.failed += 1
        result.finished_at = self.clock()
        prometheus_metrics.increment_validator_run(self.name, result.status)
        prometheus_metrics.observe_validator_run(self.name, time.monotonic() - started)
        prometheus_metrics.increment_validator_indicators(self.name, "validated", result.validated)
        logger.info("Whitelist run: %d domains overridden", result.validated)
        return result
