from ..schemas.indicator import AggregatedCandidate, VendorVerdict
from ..services.retry import RetryPolicy
from .base import VendorValidator

BASE_URL = "https://www.virustotal.com/api/v3"


def score_from_stats(stats: dict) -> float:
    """Share of engines calling the indicator malicious, 0-100."""
    malicious = stats.get("malicious") or 0
    total = sum((stats.get(k) or 0) for k in ("malicious", "suspicious", "harmless", "undetected"))
    return round(malicious / total * 100) if total else 0


class VirusTotalValidator(VendorValidator):
    name = "virustotal"
    kinds = ("ipv4", "domain")
    # public API: 4 lookups/min, 500/day; a 429 means the day is over
    rate_limit_is_quota = True
    retry = RetryPolicy(max_attempts=2, base_delay=15.0, max_delay=60.0)

    def lookup(self, candidate: AggregatedCandidate) -> VendorVerdict:
        collection = "ip_addresses" if candidate.kind == "ipv4" else "domains"
        response = self._request(
            "GET", f"{BASE_URL}/{collection}/{candidate.indicator}",
            headers={"x-apikey": self.settings.api_key, "Accept": "application/json"},
            allow_status=(404,),
        )
        if response.status_code == 404:
            return VendorVerdict(score=None, verdict="unknown", fields={"virustotal_malicious": False})
        attributes = (self._json(response).get("data") or {}).get("attributes") or {}
        stats = attributes.get("last_analysis_stats") or {}
        score = score_from_stats(stats)
        malicious = (stats.get("malicious") or 0) > 0
        if malicious:
            verdict = "malicious"
        elif stats.get("suspicious"):
            verdict = "suspicious"
        else:
            verdict = "clean"
        return VendorVerdict(score=score, verdict=verdict,
                             fields={"virustotal_malicious": malicious},
                             raw={"last_analysis_stats": stats,
                                  "reputation": attributes.get("reputation")})
