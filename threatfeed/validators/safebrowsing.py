from typing import Dict, List, Sequence

from .. import config
from ..schemas.indicator import AggregatedCandidate, VendorVerdict
from .base import VendorValidator

API_URL = "https://safebrowsing.googleapis.com/v4/threatMatches:find"

THREAT_WEIGHTS = {
    "MALWARE": 100,
    "SOCIAL_ENGINEERING": 95,
    "UNWANTED_SOFTWARE": 80,
    "POTENTIALLY_HARMFUL_APPLICATION": 70,
}
THREAT_TYPES = list(THREAT_WEIGHTS)
MAX_URLS_PER_REQUEST = 500


def threat_score(threat_types: Sequence[str]) -> int:
    if not threat_types:
        return 0
    return max(THREAT_WEIGHTS.get(t, 50) for t in threat_types)


def verdict_for(score: int) -> str:
    if score >= 90:
        return "malicious"
    if score >= 50:
        return "suspicious"
    return "clean"


def urls_for(candidate: AggregatedCandidate) -> List[str]:
    if candidate.kind == "ipv4":
        return [f"http://{candidate.indicator}/"]
    return [f"http://{candidate.indicator}/", f"https://{candidate.indicator}/"]


class SafeBrowsingValidator(VendorValidator):
    """Google Safe Browsing v4 lookup; many indicators per request."""

    name = "safebrowsing"
    kinds = ("ipv4", "domain")
    # two URLs per domain keeps a chunk under the 500 URL request limit
    lookup_chunk_size = MAX_URLS_PER_REQUEST // 2

    def lookup(self, candidate: AggregatedCandidate) -> VendorVerdict:
        return self.lookup_batch([candidate])[candidate.indicator]

    def lookup_batch(self, candidates: Sequence[AggregatedCandidate]) -> Dict[str, VendorVerdict]:
        url_owner = {}
        for candidate in candidates:
            for url in urls_for(candidate):
                url_owner[url] = candidate.indicator
        body = {
            "client": {"clientId": "threatfeed", "clientVersion": config.API_VERSION},
            "threatInfo": {
                "threatTypes": THREAT_TYPES,
                "platformTypes": ["ANY_PLATFORM"],
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": url} for url in url_owner],
            },
        }
        response = self._request("POST", API_URL, params={"key": self.settings.api_key}, json=body)
        matches: Dict[str, List[str]] = {}
        for match in self._json(response).get("matches") or []:
            url = (match.get("threat") or {}).get("url")
            indicator = url_owner.get(url)
            if indicator is not None:
                matches.setdefault(indicator, []).append(match.get("threatType"))

        out = {}
        for candidate in candidates:
            types = sorted(set(matches.get(candidate.indicator, [])))
            score = threat_score(types)
            verdict = verdict_for(score)
            out[candidate.indicator] = VendorVerdict(
                score=score, verdict=verdict, fields={"safebrowsing_verdict": verdict},
                raw={"threat_types": types} if types else None,
            )
        return out
