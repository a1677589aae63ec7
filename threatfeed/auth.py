# threatfeed/auth.py
import hmac
from typing import Optional
from fastapi import Header, HTTPException

from . import config


def _strip(tok: Optional[str]) -> Optional[str]:
    if not tok:
        return None
    tok = tok.strip()
    if tok.lower().startswith("bearer "):
        return tok[7:].strip()
    return tok


async def require_key(
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
):
    token = _strip(authorization) or _strip(x_api_key)
    if token and hmac.compare_digest(token.encode(), config.ADMIN_API_KEY.encode()):
        return
    raise HTTPException(status_code=401, detail="Unauthorized")
