"""
Health check endpoint - no authentication required
"""

from fastapi import APIRouter

from ..config import API_VERSION

router = APIRouter()


@router.get("/health", include_in_schema=False)
async def health():
    return {"status": "ok", "version": API_VERSION}
