from typing import Dict, Optional, Tuple

from ..schemas.indicator import AggregatedCandidate, VendorVerdict
from .base import BlocklistValidator

BAD_HOSTS_URL = "https://honeydb.io/api/bad-hosts"


class HoneyDBValidator(BlocklistValidator):
    """Matches IPv4 candidates against HoneyDB's bad-hosts list."""

    name = "honeydb"
    kinds = ("ipv4",)
    requires_id = True

    def download(self) -> Dict[Tuple[str, str], dict]:
        response = self._request("GET", BAD_HOSTS_URL, headers={
            "X-HoneyDb-ApiId": self.settings.api_id,
            "X-HoneyDb-ApiKey": self.settings.api_key,
        })
        listed = {}
        for host in self._json(response) or []:
            ip = host.get("remote_host")
            if ip:
                listed[(ip, "ipv4")] = host
        return listed

    def verdict(self, candidate: AggregatedCandidate, entry: Optional[dict]) -> VendorVerdict:
        if entry is None:
            return VendorVerdict(score=None, verdict="not_listed")
        count = int(entry.get("count") or 0)
        return VendorVerdict(score=min(count, 100), verdict="listed", raw={"count": count})
