"""
In-process validator scheduler.

Each enabled vendor gets its own daemon thread and interval. Threads share
nothing but the database: quota, cache and merged rows all go through the
store, so running several app instances side by side stays correct.
"""

import logging
import threading
from typing import Callable, Dict, Iterable, Optional

from .errors import AuthError
from .validators import VALIDATORS, run_validator
from .vendors import VENDOR_NAMES, get_vendor_settings

logger = logging.getLogger("threatfeed.scheduler")

WHITELIST_INTERVAL_SEC = 6 * 3600


class ValidatorScheduler:
    def __init__(self, names: Optional[Iterable[str]] = None, session_factory=None,
                 runner: Callable = run_validator):
        self.names = list(names) if names is not None else list(VALIDATORS)
        self.session_factory = session_factory
        self.runner = runner
        self._stop = threading.Event()
        self._threads: Dict[str, threading.Thread] = {}

    def _interval(self, name: str) -> Optional[float]:
        if name not in VENDOR_NAMES:
            return WHITELIST_INTERVAL_SEC
        settings = get_vendor_settings(name)
        if not settings.enabled:
            return None
        return settings.interval_sec

    def run_once(self, name: str):
        try:
            return self.runner(name, session_factory=self.session_factory)
        except AuthError as e:
            logger.error("Validator %s has bad credentials: %s", name, e)
        except Exception:
            logger.exception("Validator %s run failed", name)
        return None

    def _loop(self, name: str, interval: float):
        while not self._stop.is_set():
            self.run_once(name)
            if self._stop.wait(interval):
                break

    def start(self):
        for name in self.names:
            if name in self._threads:
                continue
            interval = self._interval(name)
            if interval is None:
                logger.info("Validator %s disabled, not scheduling", name)
                continue
            thread = threading.Thread(target=self._loop, args=(name, interval),
                                      name=f"validator-{name}", daemon=True)
            self._threads[name] = thread
            thread.start()
            logger.info("Scheduled validator %s every %ss", name, interval)

    def stop(self, timeout: float = 5.0):
        self._stop.set()
        for thread in self._threads.values():
            thread.join(timeout)
        self._threads.clear()

    @property
    def scheduled(self):
        return sorted(self._threads)
