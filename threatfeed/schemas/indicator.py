from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AggregatedCandidate(BaseModel):
    indicator: str
    kind: str
    sources: List[str] = Field(default_factory=list, description="Distinct sources, sorted")
    source_count: int = 0


class VendorVerdict(BaseModel):
    """One vendor's normalized opinion about one indicator."""
    checked: bool = True
    score: Optional[float] = Field(None, description="0-100, or null when the vendor has no opinion")
    verdict: Optional[str] = None
    fields: Dict[str, Any] = Field(default_factory=dict, description="Extra vendor columns to merge")
    raw: Optional[Dict[str, Any]] = None


class ValidatorRunResult(BaseModel):
    vendor: str
    status: str = Field("completed", description="completed | paused | no_candidates")
    validated: int = 0
    cached: int = 0
    skipped: int = 0
    failed: int = 0
    api_calls: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    message: Optional[str] = None
