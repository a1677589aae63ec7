from typing import Optional

from pydantic import BaseModel, Field


class CacheInvalidateRequest(BaseModel):
    type: Optional[str] = Field(None, description="Feed type to drop; all entries when unset")
    format: Optional[str] = None
