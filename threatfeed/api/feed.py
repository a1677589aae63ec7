"""
Public feed endpoint: GET /feed/{token}
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse, Response

from .. import config
from ..deps import get_feed_cache, get_rate_limiter, get_session_factory
from ..services import store
from ..services.feed import FEED_FORMATS, render_feed
from ..services.prometheus_metrics import prometheus_metrics
from ..services.ratelimit import headers as rate_limit_headers
from ..services.serializers import CONTENT_TYPES

router = APIRouter(tags=["Feed"])
logger = logging.getLogger("threatfeed.api.feed")

# Short fixed bodies; nothing about tokens or internals leaks through them
BAD_REQUEST = "Invalid request\n"
NOT_FOUND = "Not found\n"
TOO_MANY_REQUESTS = "Rate limit exceeded\n"


def _reject(status: int, body: str, headers: Optional[dict] = None) -> Response:
    prometheus_metrics.increment_feed_request(status)
    return PlainTextResponse(body, status_code=status, headers=headers)


@router.get("/feed/{token}", summary="Download the published indicator feed")
def get_feed(
    token: str,
    request: Request,
    type: str = Query("ipv4", description="ipv4 or domains"),
    format: Optional[str] = Query(None, description="txt, csv or json"),
    session_factory=Depends(get_session_factory),
    feed_cache=Depends(get_feed_cache),
    rate_limiter=Depends(get_rate_limiter),
):
    if format not in FEED_FORMATS or type not in store.FEED_TYPES:
        return _reject(400, BAD_REQUEST)

    feed_token = store.get_active_token(token, session_factory=session_factory)
    if feed_token is None or (feed_token.type and feed_token.type != type):
        return _reject(404, NOT_FOUND)

    limit = rate_limiter.check(token)
    limit_headers = rate_limit_headers(limit)
    if not limit.allowed:
        prometheus_metrics.increment_rate_limited()
        limit_headers["Retry-After"] = str(limit.retry_after())
        return _reject(429, TOO_MANY_REQUESTS, headers=limit_headers)

    body, hit = render_feed(type, format, feed_cache, session_factory=session_factory)

    store.log_feed_access(
        token, store.FEED_TYPES[type],
        request.client.host if request.client else None,
        request.headers.get("user-agent"),
        session_factory=session_factory,
    )
    prometheus_metrics.increment_feed_request(200)
    return Response(
        content=body,
        media_type=CONTENT_TYPES[format],
        headers={
            **limit_headers,
            "Cache-Control": f"public, max-age={config.FEED_CACHE_TTL_SEC}",
            "X-Cache-Status": "HIT" if hit else "MISS",
        },
    )
