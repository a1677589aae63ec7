"""
Error taxonomy for vendor validation and merging
"""


class ThreatFeedError(Exception):
    """Base class for service errors"""


class VendorError(ThreatFeedError):
    """A vendor call failed in a way that retrying will not fix"""

    def __init__(self, vendor: str, message: str, status_code: int = None):
        super().__init__(f"{vendor}: {message}")
        self.vendor = vendor
        self.status_code = status_code


class TransientVendorError(VendorError):
    """Timeout, transport failure, 5xx or vendor-side rate limiting"""


class QuotaExhausted(ThreatFeedError):
    """The vendor's call budget for the current period is spent"""

    def __init__(self, vendor: str, message: str = "quota exhausted"):
        super().__init__(f"{vendor}: {message}")
        self.vendor = vendor


class AuthError(ThreatFeedError):
    """Missing or rejected vendor credentials"""

    def __init__(self, vendor: str, message: str = "authentication failed"):
        super().__init__(f"{vendor}: {message}")
        self.vendor = vendor


class MergeConflict(ThreatFeedError):
    """Concurrent writers kept winning; the merge gave up after bounded retries"""
