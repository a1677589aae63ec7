from ..schemas.indicator import AggregatedCandidate, VendorVerdict
from .base import VendorValidator

HOST_REPUTATION_URL = "https://neutrinoapi.net/host-reputation"


class NeutrinoAPIValidator(VendorValidator):
    name = "neutrinoapi"
    kinds = ("ipv4",)
    requires_id = True
    list_rating = 3

    def lookup(self, candidate: AggregatedCandidate) -> VendorVerdict:
        response = self._request(
            "POST", HOST_REPUTATION_URL,
            headers={"User-ID": self.settings.api_id, "API-Key": self.settings.api_key},
            data={"host": candidate.indicator, "list-rating": str(self.list_rating)},
        )
        data = self._json(response)
        list_count = int(data.get("list-count") or 0)
        listed = bool(data.get("is-listed"))
        return VendorVerdict(
            score=min(100, list_count * 10),
            verdict="listed" if listed else "not_listed",
            fields={"neutrinoapi_in_blocklist": listed},
            raw={"list-count": list_count},
        )
