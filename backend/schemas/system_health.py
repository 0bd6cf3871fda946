from datetime import datetime
from typing import List

from pydantic import BaseModel


class ClearedSessionsResponse(BaseModel):
    message: str
    cleared_count: int
    timestamp: datetime


class IntegrityReport(BaseModel):
    status: str
    issues: List[str]
    checked_at: datetime


class ClearedCacheResponse(BaseModel):
    message: str
    cleared_cache_entries: int
    timestamp: datetime
