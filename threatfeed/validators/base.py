"""
Base vendor validator.

A validator takes a bounded batch of candidates, answers each one from its
own TTL cache or from the vendor API, and merges one verdict per indicator.
Quota is shared across processes through QuotaManager; everything else is
local to the run.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx

from .. import config
from ..errors import AuthError, MergeConflict, QuotaExhausted, TransientVendorError, VendorError
from ..schemas.indicator import AggregatedCandidate, ValidatorRunResult, VendorVerdict
from ..services import aggregator, merger
from ..services.prometheus_metrics import prometheus_metrics
from ..services.quota import QuotaManager
from ..services.retry import RetryPolicy
from ..services.vendor_cache import VendorCache
from ..utils.clock import utcnow
from ..vendors import VendorSettings, get_vendor_settings

logger = logging.getLogger("threatfeed.validators")


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class VendorValidator(ABC):
    """Shared run loop; subclasses implement ``lookup`` (or ``lookup_batch``)."""

    name: str = ""
    kinds: Tuple[str, ...] = ("ipv4",)
    requires_key: bool = True
    requires_id: bool = False
    # indicators answered per lookup_batch call
    lookup_chunk_size: int = 1
    retry: RetryPolicy = RetryPolicy()
    # vendor 429 means the daily budget is gone, not a transient throttle
    rate_limit_is_quota: bool = False

    def __init__(self, settings: Optional[VendorSettings] = None, session_factory=None,
                 client: Optional[httpx.Client] = None, quota: Optional[QuotaManager] = None,
                 clock: Callable = utcnow, sleep: Callable[[float], None] = time.sleep,
                 recheck: bool = False):
        self.settings = settings or get_vendor_settings(self.name)
        self.session_factory = session_factory
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=config.VENDOR_HTTP_TIMEOUT_SEC,
            headers={"User-Agent": f"threatfeed/{config.API_VERSION}"},
        )
        self.quota = quota or QuotaManager(session_factory=session_factory, clock=clock,
                                           settings_loader=lambda _name: self.settings)
        self.cache = VendorCache(self.name, self.settings.cache_ttl_sec,
                                 session_factory=session_factory, clock=clock)
        self.clock = clock
        self.sleep = sleep
        self.recheck = recheck
        self._budget = 0
        self._api_calls = 0
        self._last_call: Optional[float] = None
        self._prepared = False

    # -- subclass hooks -------------------------------------------------

    @property
    def batch_size(self) -> int:
        return self.settings.batch_size

    def prepare(self) -> None:
        """Download anything the lookups need (blocklists); runs once, before the first miss."""

    @abstractmethod
    def lookup(self, candidate: AggregatedCandidate) -> VendorVerdict:
        """Ask the vendor about one indicator."""

    def lookup_batch(self, candidates: Sequence[AggregatedCandidate]) -> Dict[str, VendorVerdict]:
        return {c.indicator: self.lookup(c) for c in candidates}

    def confidence_for(self, verdict: VendorVerdict) -> Optional[float]:
        """Contribution handed to the merger; the vendor score by default."""
        return verdict.score

    # -- HTTP -----------------------------------------------------------

    def _pace(self) -> None:
        interval = self.settings.min_interval_sec
        if interval <= 0 or self._last_call is None:
            return
        wait = interval - (time.monotonic() - self._last_call)
        if wait > 0:
            self.sleep(wait)

    def _record_call(self, status_code: Optional[int]) -> None:
        self._last_call = time.monotonic()
        self._api_calls += 1
        self._budget -= 1
        self.quota.increment(self.name, 1)
        prometheus_metrics.increment_vendor_call(self.name, status_code)

    def _request(self, method: str, url: str, allow_status: Tuple[int, ...] = (), **kwargs) -> httpx.Response:
        """One vendor call with pacing, retries, error classification and quota accounting."""

        def attempt() -> httpx.Response:
            if self._budget <= 0:
                raise QuotaExhausted(self.name, "run budget spent")
            self._pace()
            try:
                response = self.client.request(method, url, **kwargs)
            except httpx.TimeoutException as e:
                self._record_call(None)
                raise TransientVendorError(self.name, f"timeout: {e}")
            except httpx.TransportError as e:
                self._record_call(None)
                raise TransientVendorError(self.name, f"transport error: {e}")

            status = response.status_code
            if status in (401, 403):
                self._last_call = time.monotonic()
                raise AuthError(self.name, f"vendor rejected credentials (HTTP {status})")
            self._record_call(status)
            if status in allow_status:
                return response
            if status == 429:
                if self.rate_limit_is_quota:
                    raise QuotaExhausted(self.name, "vendor reported quota exceeded")
                raise TransientVendorError(self.name, "rate limited by vendor", status)
            if status >= 500:
                raise TransientVendorError(self.name, f"HTTP {status}", status)
            if status >= 400:
                raise VendorError(self.name, f"HTTP {status}", status)
            return response

        return self.retry.call(attempt, sleep=self.sleep)

    def _json(self, response: httpx.Response):
        try:
            return response.json()
        except ValueError:
            raise VendorError(self.name, "malformed JSON response", response.status_code)

    # -- run loop -------------------------------------------------------

    def check_credentials(self) -> None:
        if self.requires_key and not self.settings.api_key:
            raise AuthError(self.name, "API key is not configured")
        if self.requires_id and not self.settings.api_id:
            raise AuthError(self.name, "API id is not configured")

    def select_candidates(self) -> List[AggregatedCandidate]:
        """Fill the batch round-robin across kinds so a long ipv4 backlog cannot starve domains."""
        queues = [
            aggregator.select_candidates(kind, self.name, self.batch_size, recheck=self.recheck,
                                         session_factory=self.session_factory)
            for kind in self.kinds
        ]
        out: List[AggregatedCandidate] = []
        for position in range(max((len(q) for q in queues), default=0)):
            for queue in queues:
                if position < len(queue):
                    out.append(queue[position])
                    if len(out) >= self.batch_size:
                        return out
        return out

    def _ensure_prepared(self) -> None:
        if not self._prepared:
            self.prepare()
            self._prepared = True

    def _merge(self, candidate: AggregatedCandidate, verdict: VendorVerdict) -> None:
        fields = {f"{self.name}_checked": True, f"{self.name}_score": verdict.score}
        fields.update(verdict.fields)
        merger.merge_validator_result(candidate.indicator, candidate.kind, self.name,
                                      self.confidence_for(verdict), fields,
                                      source_count=candidate.source_count,
                                      session_factory=self.session_factory)

    def _merge_failure(self, candidate: AggregatedCandidate, error: Exception) -> None:
        logger.warning("%s lookup failed for %s: %s", self.name, candidate.indicator, error)
        try:
            merger.merge_validator_result(candidate.indicator, candidate.kind, self.name, None,
                                          {f"{self.name}_checked": True, f"{self.name}_score": None},
                                          source_count=candidate.source_count,
                                          session_factory=self.session_factory)
        except MergeConflict as e:
            logger.error("%s could not record failure for %s: %s", self.name, candidate.indicator, e)

    def _from_cache(self, entry) -> VendorVerdict:
        payload = entry.raw_payload or {}
        return VendorVerdict(score=entry.score, verdict=entry.verdict,
                             fields=payload.get("fields") or {}, raw=payload.get("raw"))

    def _store(self, candidate: AggregatedCandidate, verdict: VendorVerdict, result: ValidatorRunResult) -> None:
        self.cache.put(candidate.indicator, candidate.kind, verdict.score, verdict.verdict,
                       {"fields": verdict.fields, "raw": verdict.raw})
        try:
            self._merge(candidate, verdict)
            result.validated += 1
        except MergeConflict as e:
            logger.error("%s merge gave up for %s: %s", self.name, candidate.indicator, e)
            result.failed += 1

    def process(self, candidates: List[AggregatedCandidate], result: ValidatorRunResult) -> None:
        misses: List[AggregatedCandidate] = []
        for candidate in candidates:
            entry = self.cache.get(candidate.indicator, candidate.kind)
            if entry is None:
                misses.append(candidate)
                continue
            try:
                self._merge(candidate, self._from_cache(entry))
                result.cached += 1
            except MergeConflict as e:
                logger.error("%s merge gave up for %s: %s", self.name, candidate.indicator, e)
                result.failed += 1

        if not misses:
            return
        try:
            self._ensure_prepared()
        except VendorError as e:
            # leave the misses unchecked so the next run tries again
            logger.error("%s list download failed: %s", self.name, e)
            result.failed += len(misses)
            result.message = str(e)
            return
        done = 0
        for chunk in _chunks(misses, max(1, self.lookup_chunk_size)):
            try:
                verdicts = self.lookup_batch(chunk)
            except QuotaExhausted as e:
                logger.info("%s paused: %s", self.name, e)
                result.status = "paused"
                result.message = str(e)
                result.skipped += len(misses) - done
                return
            except VendorError as e:
                for candidate in chunk:
                    self._merge_failure(candidate, e)
                result.failed += len(chunk)
                done += len(chunk)
                continue
            for candidate in chunk:
                verdict = verdicts.get(candidate.indicator)
                if verdict is None:
                    self._merge_failure(candidate, VendorError(self.name, "no verdict returned"))
                    result.failed += 1
                else:
                    self._store(candidate, verdict, result)
            done += len(chunk)

    def run(self) -> ValidatorRunResult:
        """Validate one batch. Raises AuthError on bad credentials; everything else is reported."""
        result = ValidatorRunResult(vendor=self.name, started_at=self.clock())
        started = time.monotonic()
        auth_failed = False
        try:
            self.check_credentials()
            remaining = self.quota.remaining(self.name)
            if remaining <= 0:
                result.status = "paused"
                result.message = "quota exhausted"
                return result
            self._budget = remaining
            self.cache.cleanup_expired()
            candidates = self.select_candidates()
            if not candidates:
                result.status = "no_candidates"
                return result
            try:
                self.process(candidates, result)
            except QuotaExhausted as e:
                # raised by prepare(); nothing was looked up yet
                result.status = "paused"
                result.message = str(e)
                result.skipped += len(candidates) - result.cached - result.failed
            return result
        except AuthError:
            auth_failed = True
            prometheus_metrics.increment_validator_run(self.name, "auth_error")
            raise
        finally:
            result.api_calls = self._api_calls
            result.finished_at = self.clock()
            if self._owns_client:
                self.client.close()
            if not auth_failed:
                self._report(result, time.monotonic() - started)

    def _report(self, result: ValidatorRunResult, seconds: float) -> None:
        prometheus_metrics.increment_validator_run(self.name, result.status)
        prometheus_metrics.observe_validator_run(self.name, seconds)
        for outcome in ("validated", "cached", "skipped", "failed"):
            prometheus_metrics.increment_validator_indicators(self.name, outcome, getattr(result, outcome))
        logger.info("%s run finished: %s", self.name, result.status, extra={
            "vendor": self.name, "status": result.status, "validated": result.validated,
            "cached": result.cached, "skipped": result.skipped, "failed": result.failed,
            "api_calls": result.api_calls, "component": "validator",
        })


class BlocklistValidator(VendorValidator):
    """Vendors that publish a list: one download per run, membership checks after that."""

    lookup_chunk_size = 1000

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.listed: Dict[Tuple[str, str], dict] = {}

    @abstractmethod
    def download(self) -> Dict[Tuple[str, str], dict]:
        """Fetch the vendor list keyed by (indicator, kind)."""

    @abstractmethod
    def verdict(self, candidate: AggregatedCandidate, entry: Optional[dict]) -> VendorVerdict:
        """Verdict for one candidate given its list entry (None when unlisted)."""

    def prepare(self) -> None:
        self.listed = self.download()
        logger.info("%s list downloaded: %d entries", self.name, len(self.listed))

    def lookup(self, candidate: AggregatedCandidate) -> VendorVerdict:
        return self.verdict(candidate, self.listed.get((candidate.indicator, candidate.kind)))
