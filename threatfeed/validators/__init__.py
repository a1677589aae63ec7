"""
Vendor validator registry
"""

from typing import Dict, Type

from ..vendors import get_vendor_settings
from .abuse_ch import AbuseChValidator
from .abuseipdb import AbuseIPDBValidator
from .base import BlocklistValidator, VendorValidator
from .honeydb import HoneyDBValidator
from .ipqs import IPQSValidator
from .neutrinoapi import NeutrinoAPIValidator
from .otx import OTXValidator
from .safebrowsing import SafeBrowsingValidator
from .urlscan import URLScanValidator
from .virustotal import VirusTotalValidator
from .whitelist import WhitelistValidator

VALIDATORS: Dict[str, Type] = {
    cls.name: cls
    for cls in (
        AbuseIPDBValidator,
        VirusTotalValidator,
        OTXValidator,
        SafeBrowsingValidator,
        IPQSValidator,
        HoneyDBValidator,
        NeutrinoAPIValidator,
        URLScanValidator,
        AbuseChValidator,
        WhitelistValidator,
    )
}

_RUN_OPTIONS = ("session_factory", "client", "quota", "clock", "sleep", "recheck")


def build_validator(name: str, **overrides):
    """Instantiate a validator; unknown keyword names are treated as settings overrides."""
    if name not in VALIDATORS:
        raise KeyError(f"Unknown validator: {name}")
    cls = VALIDATORS[name]
    options = {k: overrides.pop(k) for k in _RUN_OPTIONS if k in overrides}
    if cls is WhitelistValidator:
        return cls(**options)
    settings = get_vendor_settings(name)
    if overrides:
        settings = settings.with_overrides(**overrides)
    return cls(settings=settings, **options)


def run_validator(name: str, **overrides):
    return build_validator(name, **overrides).run()


__all__ = [
    "VALIDATORS",
    "VendorValidator",
    "BlocklistValidator",
    "WhitelistValidator",
    "build_validator",
    "run_validator",
]
