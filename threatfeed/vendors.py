"""
Known reputation vendors and their per-vendor settings.

The vendor set is closed: every vendor has a fixed pair of columns on
``merged_indicators`` and an entry in ``VENDOR_DEFAULTS``. Settings are read
from the environment each time ``get_vendor_settings`` is called so a
scheduler picks up rotated credentials on its next run.
"""

import os
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from .config import env_bool, env_float, env_int

VENDOR_NAMES: Tuple[str, ...] = (
    "abuseipdb",
    "virustotal",
    "otx",
    "safebrowsing",
    "ipqs",
    "honeydb",
    "neutrinoapi",
    "urlscan",
    "abuse_ch",
)

QUOTA_PERIODS = ("day", "month")


@dataclass(frozen=True)
class VendorSettings:
    name: str
    api_key: Optional[str] = None
    api_id: Optional[str] = None
    quota_limit: int = 1000
    quota_period: str = "day"
    batch_size: int = 100
    cache_ttl_sec: int = 24 * 3600
    min_interval_sec: float = 1.0
    interval_sec: int = 3600
    enabled: bool = True

    def with_overrides(self, **overrides) -> "VendorSettings":
        return replace(self, **overrides)


# name -> (key env, id env)
_CREDENTIAL_ENV: Dict[str, Tuple[str, Optional[str]]] = {
    "abuseipdb": ("ABUSEIPDB_API_KEY", None),
    "virustotal": ("VIRUSTOTAL_API_KEY", None),
    "otx": ("OTX_API_KEY", None),
    "safebrowsing": ("GOOGLE_SAFEBROWSING_API_KEY", None),
    "ipqs": ("IPQS_API_KEY", None),
    "honeydb": ("HONEYDB_API_KEY", "HONEYDB_API_ID"),
    "neutrinoapi": ("NEUTRINOAPI_API_KEY", "NEUTRINOAPI_USER_ID"),
    "urlscan": ("URLSCAN_API_KEY", None),
    "abuse_ch": ("ABUSE_CH_API_KEY", None),
}

VENDOR_DEFAULTS: Dict[str, VendorSettings] = {
    # Blocklist download: one call per run
    "abuseipdb": VendorSettings("abuseipdb", quota_limit=5, batch_size=5000,
                                cache_ttl_sec=24 * 3600, min_interval_sec=0.0, interval_sec=6 * 3600),
    # 4 lookups/min, 500/day
    "virustotal": VendorSettings("virustotal", quota_limit=500, batch_size=250,
                                 cache_ttl_sec=7 * 24 * 3600, min_interval_sec=15.0, interval_sec=3600),
    "otx": VendorSettings("otx", quota_limit=10000, batch_size=100, min_interval_sec=1.0, interval_sec=1800),
    # 10k queries/day, 500 URLs per request
    "safebrowsing": VendorSettings("safebrowsing", quota_limit=10000, batch_size=4000,
                                   min_interval_sec=2.0, interval_sec=3600),
    "ipqs": VendorSettings("ipqs", quota_limit=1000, quota_period="month", batch_size=30,
                           min_interval_sec=1.0, interval_sec=24 * 3600),
    "honeydb": VendorSettings("honeydb", quota_limit=100, batch_size=1000, cache_ttl_sec=6 * 3600,
                              min_interval_sec=0.0, interval_sec=6 * 3600),
    "neutrinoapi": VendorSettings("neutrinoapi", quota_limit=5000, batch_size=100,
                                  min_interval_sec=0.5, interval_sec=3600),
    "urlscan": VendorSettings("urlscan", quota_limit=1000, batch_size=100, min_interval_sec=1.0,
                              interval_sec=3600),
    "abuse_ch": VendorSettings("abuse_ch", quota_limit=100, batch_size=10000,
                               cache_ttl_sec=7 * 24 * 3600, min_interval_sec=0.0, interval_sec=6 * 3600),
}


def _period(key: str, default: str) -> str:
    value = (os.getenv(key) or "").strip().lower()
    return value if value in QUOTA_PERIODS else default


def get_vendor_settings(name: str) -> VendorSettings:
    """Resolve settings for one vendor from defaults plus environment overrides."""
    if name not in VENDOR_DEFAULTS:
        raise KeyError(f"Unknown vendor: {name}")
    base = VENDOR_DEFAULTS[name]
    prefix = name.upper()
    key_env, id_env = _CREDENTIAL_ENV[name]
    return base.with_overrides(
        api_key=os.getenv(key_env) or None,
        api_id=(os.getenv(id_env) or None) if id_env else None,
        quota_limit=env_int(f"{prefix}_QUOTA_LIMIT", base.quota_limit, minimum=0),
        quota_period=_period(f"{prefix}_QUOTA_PERIOD", base.quota_period),
        batch_size=env_int(f"{prefix}_BATCH_SIZE", base.batch_size, minimum=1),
        cache_ttl_sec=env_int(f"{prefix}_CACHE_TTL_SEC", base.cache_ttl_sec, minimum=0),
        min_interval_sec=env_float(f"{prefix}_MIN_INTERVAL_SEC", base.min_interval_sec, minimum=0.0),
        interval_sec=env_int(f"{prefix}_INTERVAL_SEC", base.interval_sec, minimum=1),
        enabled=env_bool(f"{prefix}_ENABLED", base.enabled),
    )
