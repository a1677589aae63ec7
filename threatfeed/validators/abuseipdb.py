from typing import Dict, Optional, Tuple

from ..schemas.indicator import AggregatedCandidate, VendorVerdict
from .base import BlocklistValidator

BASE_URL = "https://api.abuseipdb.com/api/v2"


class AbuseIPDBValidator(BlocklistValidator):
    """Checks IPv4 candidates against the AbuseIPDB blacklist (score >= 70)."""

    name = "abuseipdb"
    kinds = ("ipv4",)
    confidence_minimum = 70
    list_limit = 10000

    def download(self) -> Dict[Tuple[str, str], dict]:
        response = self._request(
            "GET", f"{BASE_URL}/blacklist",
            params={"confidenceMinimum": self.confidence_minimum, "limit": self.list_limit},
            headers={"Key": self.settings.api_key, "Accept": "application/json"},
        )
        listed = {}
        for item in self._json(response).get("data") or []:
            ip = item.get("ipAddress")
            if ip and ":" not in ip:
                listed[(ip, "ipv4")] = item
        return listed

    def verdict(self, candidate: AggregatedCandidate, entry: Optional[dict]) -> VendorVerdict:
        if entry is None:
            return VendorVerdict(score=None, verdict="not_listed",
                                 fields={"abuseipdb_in_blacklist": False})
        score = float(entry.get("abuseConfidenceScore") or 0)
        return VendorVerdict(score=score, verdict="listed",
                             fields={"abuseipdb_in_blacklist": True}, raw=entry)
