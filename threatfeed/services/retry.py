"""
Bounded retry with exponential backoff for vendor calls
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from ..errors import TransientVendorError

logger = logging.getLogger("threatfeed.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.25  # fraction of the computed delay

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        if attempt <= 1:
            backoff = self.base_delay
        else:
            backoff = self.base_delay * (self.multiplier ** (attempt - 1))
        backoff = min(backoff, self.max_delay)
        if self.jitter:
            backoff += random.uniform(0, backoff * self.jitter)
        return backoff

    def should_retry(self, attempt: int, exc: Optional[BaseException]) -> bool:
        if attempt >= self.max_attempts:
            return False
        return isinstance(exc, TransientVendorError)

    def call(self, fn: Callable[[], T], sleep: Callable[[float], None] = time.sleep) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except TransientVendorError as e:
                if not self.should_retry(attempt, e):
                    raise
                wait = self.delay(attempt)
                logger.warning("Transient vendor failure, retrying", extra={
                    "vendor": e.vendor, "attempt": attempt, "wait_sec": round(wait, 3),
                    "error": str(e), "component": "validator",
                })
                sleep(wait)
