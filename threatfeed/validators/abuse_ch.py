import ipaddress
from typing import Dict, Optional, Tuple

from ..schemas.indicator import AggregatedCandidate, VendorVerdict
from .base import BlocklistValidator

HUNTING_API_URL = "https://hunting-api.abuse.ch/api/v1/"


def _kind_of(indicator: str) -> str:
    try:
        ipaddress.IPv4Address(indicator)
        return "ipv4"
    except ValueError:
        return "domain"


class AbuseChValidator(BlocklistValidator):
    """abuse.ch false-positive list: a listed indicator is known benign.

    A match records ``abuse_ch_is_fp`` with score 0 and contributes no
    confidence; everything else is marked checked with no opinion.
    """

    name = "abuse_ch"
    kinds = ("ipv4", "domain")

    def download(self) -> Dict[Tuple[str, str], dict]:
        response = self._request("POST", HUNTING_API_URL,
                                 headers={"Auth-Key": self.settings.api_key},
                                 json={"query": "get_fplist", "format": "json"})
        data = self._json(response)
        items = data if isinstance(data, list) else list((data or {}).values())
        listed = {}
        for item in items:
            if isinstance(item, str):
                value = item
            elif isinstance(item, dict):
                value = item.get("indicator") or item.get("value")
            else:
                continue
            if not value:
                continue
            value = value.strip().lower()
            listed[(value, _kind_of(value))] = {"indicator": value}
        return listed

    def verdict(self, candidate: AggregatedCandidate, entry: Optional[dict]) -> VendorVerdict:
        if entry is None:
            return VendorVerdict(score=None, verdict="not_listed", fields={"abuse_ch_is_fp": False})
        return VendorVerdict(score=0, verdict="false_positive", fields={"abuse_ch_is_fp": True})

    def confidence_for(self, verdict: VendorVerdict):
        return None
