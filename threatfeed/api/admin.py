"""
Admin endpoints: validator runs, quotas and feed cache control
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from ..auth import require_key
from ..deps import get_feed_cache, get_rate_limiter, get_session_factory
from ..errors import AuthError
from ..schemas.feed import CacheInvalidateRequest
from ..schemas.indicator import ValidatorRunResult
from ..services.cache import generate_key
from ..services.quota import QuotaManager
from ..validators import VALIDATORS, build_validator
from ..vendors import VENDOR_NAMES, get_vendor_settings

router = APIRouter(tags=["Admin"], dependencies=[Depends(require_key)])
logger = logging.getLogger("threatfeed.api.admin")


@router.get("/validators", summary="List validators and their settings")
def list_validators():
    out = []
    for name in VALIDATORS:
        if name not in VENDOR_NAMES:
            out.append({"name": name, "kinds": list(VALIDATORS[name].kinds), "enabled": True})
            continue
        settings = get_vendor_settings(name)
        out.append({
            "name": name,
            "kinds": list(VALIDATORS[name].kinds),
            "enabled": settings.enabled,
            "configured": bool(settings.api_key),
            "batch_size": settings.batch_size,
            "interval_sec": settings.interval_sec,
            "quota_limit": settings.quota_limit,
            "quota_period": settings.quota_period,
        })
    return {"validators": out}


@router.post("/validators/{name}/run", response_model=ValidatorRunResult, summary="Run one validator now")
def run_validator(name: str, recheck: bool = Query(False),
                  session_factory=Depends(get_session_factory)):
    if name not in VALIDATORS:
        raise HTTPException(status_code=404, detail="Unknown validator")
    validator = build_validator(name, session_factory=session_factory, recheck=recheck)
    try:
        return validator.run()
    except AuthError as e:
        logger.error("Validator %s rejected: %s", name, e)
        raise HTTPException(status_code=502, detail="Vendor authentication failed")


@router.get("/quotas", summary="Current quota usage per vendor")
def get_quotas(session_factory=Depends(get_session_factory)):
    manager = QuotaManager(session_factory=session_factory)
    return {"quotas": [manager.usage(name) for name in VENDOR_NAMES]}


@router.get("/feed/stats", summary="Feed cache and rate limiter statistics")
def feed_stats(feed_cache=Depends(get_feed_cache), rate_limiter=Depends(get_rate_limiter)):
    return {"cache": feed_cache.stats(), "rate_limit": rate_limiter.stats()}


@router.post("/feed/cache/invalidate", summary="Drop cached feed bodies")
def invalidate_feed_cache(payload: Optional[CacheInvalidateRequest] = Body(None),
                          feed_cache=Depends(get_feed_cache)):
    if payload is None or not (payload.type and payload.format):
        return {"invalidated": feed_cache.invalidate_all()}
    key = generate_key({"type": payload.type, "format": payload.format})
    return {"invalidated": int(feed_cache.invalidate(key))}
