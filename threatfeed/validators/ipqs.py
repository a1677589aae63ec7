from urllib.parse import quote

from ..errors import VendorError
from ..schemas.indicator import AggregatedCandidate, VendorVerdict
from .base import VendorValidator

BASE_URL = "https://www.ipqualityscore.com/api/json/url"

FLAG_PENALTIES = (("malware", 30), ("phishing", 30), ("spamming", 10), ("suspicious", 10))


def ipqs_score(data: dict) -> int:
    score = data.get("risk_score") or 0
    score += sum(points for flag, points in FLAG_PENALTIES if data.get(flag))
    return min(100, score)


def ipqs_category(data: dict) -> str:
    for flag in ("malware", "phishing", "parking", "suspicious"):
        if data.get(flag):
            return flag
    return "unknown"


class IPQSValidator(VendorValidator):
    """IPQualityScore URL reputation for domains (monthly quota)."""

    name = "ipqs"
    kinds = ("domain",)

    def lookup(self, candidate: AggregatedCandidate) -> VendorVerdict:
        url = f"{BASE_URL}/{self.settings.api_key}/{quote(candidate.indicator, safe='')}"
        data = self._json(self._request("GET", url))
        if not data.get("success", False):
            raise VendorError(self.name, data.get("message") or "lookup unsuccessful")
        score = ipqs_score(data)
        category = ipqs_category(data)
        return VendorVerdict(
            score=score,
            verdict="malicious" if score >= 75 else "clean",
            fields={"ipqs_category": category},
            raw={k: data.get(k) for k in ("risk_score", "malware", "phishing", "spamming",
                                          "suspicious", "parking", "domain_rank")},
        )
