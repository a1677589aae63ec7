from .indicator import INDICATOR_KINDS, VENDOR_FIELD_NAMES, MergedIndicator, RawIndicator
from .vendor_cache import VendorCacheEntry
from .quota import QuotaCounter
from .feed import FeedAccessLog, FeedToken
from .whitelist import TrustedDomain

__all__ = [
    "INDICATOR_KINDS",
    "VENDOR_FIELD_NAMES",
    "RawIndicator",
    "MergedIndicator",
    "VendorCacheEntry",
    "QuotaCounter",
    "FeedToken",
    "FeedAccessLog",
    "TrustedDomain",
]
