"""
AlienVault OTX validator.

Scores an indicator from three OTX views (general, passive_dns, url_list):
pulse count, author diversity, recency of the newest pulse, critical tags and
corroborating URL/DNS activity, minus penalties for shared hosting and stale
pulses.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from ..schemas.indicator import AggregatedCandidate, VendorVerdict
from .base import VendorValidator

BASE_URL = "https://otx.alienvault.com/api/v1"

CRITICAL_TAGS = ("c2", "botnet", "ransomware", "phishing", "exploit-kit", "malware")
SHARED_HOSTING_ASNS = ("cloudflare", "amazon", "google")


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def _recent(items: Iterable[dict], key: str, now: datetime, days: int) -> List[dict]:
    cutoff = now - timedelta(days=days)
    out = []
    for item in items or []:
        ts = _parse_time(item.get(key))
        if ts is not None and ts >= cutoff:
            out.append(item)
    return out


def pulse_points(count: int) -> int:
    if count >= 7:
        return 40
    if count >= 4:
        return 30
    if count >= 2:
        return 20
    if count == 1:
        return 10
    return 0


def verdict_for(score: float) -> str:
    if score >= 70:
        return "malicious"
    if score >= 50:
        return "suspicious"
    return "low_confidence"


def calculate_score(general: dict, passive_dns: Optional[dict], url_list: Optional[dict],
                    now: datetime) -> Tuple[int, List[str]]:
    score = 0
    reasons: List[str] = []
    pulses = (general.get("pulse_info") or {}).get("pulses") or []

    points = pulse_points(len(pulses))
    if points:
        score += points
        reasons.append(f"{len(pulses)} pulses (+{points})")

    authors = {((p.get("author") or {}).get("username")) for p in pulses} - {None}
    if len(authors) >= 4:
        score += 15
        reasons.append(f"{len(authors)} authors (+15)")
    elif len(authors) >= 2:
        score += 10
        reasons.append(f"{len(authors)} authors (+10)")

    stamps = [ts for ts in (_parse_time(p.get("modified") or p.get("created")) for p in pulses) if ts]
    latest = max(stamps) if stamps else None
    if latest is not None:
        days = (now - latest).days
        if days <= 30:
            score += 20
            reasons.append(f"latest pulse {days}d ago (+20)")
        elif days <= 90:
            score += 12
            reasons.append(f"latest pulse {days}d ago (+12)")
        elif days <= 365:
            score += 6
            reasons.append(f"latest pulse {days}d ago (+6)")

    tags = [t.lower() for p in pulses for t in (p.get("tags") or [])]
    found = []
    for critical in CRITICAL_TAGS:
        if any(critical in t for t in tags):
            found.append(critical)
            if len(found) * 5 >= 15:
                break
    if found:
        score += len(found) * 5
        reasons.append(f"critical tags {', '.join(found)} (+{len(found) * 5})")

    recent_urls = _recent((url_list or {}).get("url_list"), "date", now, 90)
    if len(recent_urls) > 3:
        score += 5
        reasons.append(f"{len(recent_urls)} recent URLs (+5)")
    recent_dns = _recent((passive_dns or {}).get("passive_dns"), "last", now, 90)
    if len(recent_dns) > 10:
        score += 5
        reasons.append(f"{len(recent_dns)} recent DNS records (+5)")

    asn = (general.get("asn") or "").lower()
    if latest is None and any(name in asn for name in SHARED_HOSTING_ASNS):
        score -= 10
        reasons.append("shared hosting without recent pulses (-10)")
    if latest is not None and now - latest > timedelta(days=365) and not recent_urls and not recent_dns:
        score -= 15
        reasons.append("only pulses older than a year (-15)")

    return max(0, min(100, score)), reasons


class OTXValidator(VendorValidator):
    name = "otx"
    kinds = ("ipv4", "domain")
    sections = ("general", "passive_dns", "url_list")

    def lookup(self, candidate: AggregatedCandidate) -> VendorVerdict:
        section_type = "IPv4" if candidate.kind == "ipv4" else "domain"
        base = f"{BASE_URL}/indicators/{section_type}/{candidate.indicator}"
        data = {}
        for section in self.sections:
            response = self._request("GET", f"{base}/{section}",
                                     headers={"X-OTX-API-KEY": self.settings.api_key})
            data[section] = self._json(response)
        general = data.get("general") or {}
        score, reasons = calculate_score(general, data.get("passive_dns"), data.get("url_list"),
                                         self.clock())
        verdict = verdict_for(score)
        pulses = (general.get("pulse_info") or {}).get("pulses") or []
        return VendorVerdict(score=score, verdict=verdict, fields={"otx_verdict": verdict},
                             raw={"pulse_count": len(pulses), "reasons": reasons})
