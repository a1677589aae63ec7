from datetime import datetime, timedelta
from typing import List, Tuple

from ..schemas.indicator import AggregatedCandidate, VendorVerdict
from .base import VendorValidator

SEARCH_URL = "https://urlscan.io/api/v1/search/"
RECENT_DAYS = 30


def _scan_time(scan: dict):
    value = (scan.get("task") or {}).get("time")
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


def score_scans(scans: List[dict], now: datetime) -> Tuple[int, bool, int]:
    """Returns (score, malicious, scans considered) over scans from the last 30 days."""
    cutoff = now - timedelta(days=RECENT_DAYS)
    score = 0
    malicious = False
    considered = 0
    for scan in scans:
        ts = _scan_time(scan)
        if ts is None or ts <= cutoff:
            continue
        considered += 1
        verdicts = scan.get("verdicts") or scan.get("verdict") or {}
        overall = verdicts.get("overall") or {}
        if overall.get("malicious") is True:
            score += 30
            malicious = True
        if overall.get("hasVerdicts") and "phishing" in (overall.get("categories") or []):
            score += 25
            malicious = True
        if (verdicts.get("engines") or {}).get("malicious") is True:
            score += 20
            malicious = True
        if (verdicts.get("community") or {}).get("malicious") is True:
            score += 15
    return min(score, 100), malicious, considered


class URLScanValidator(VendorValidator):
    name = "urlscan"
    kinds = ("domain",)

    def lookup(self, candidate: AggregatedCandidate) -> VendorVerdict:
        response = self._request(
            "GET", SEARCH_URL,
            params={"q": f"domain:{candidate.indicator}", "size": 10},
            headers={"API-Key": self.settings.api_key},
        )
        scans = self._json(response).get("results") or []
        score, malicious, considered = score_scans(scans, self.clock())
        return VendorVerdict(
            score=score,
            verdict="malicious" if malicious else ("clean" if considered else "unknown"),
            fields={"urlscan_malicious": malicious},
            raw={"recent_scans": considered},
        )
