from pydantic import BaseModel
from typing import Optional, Any, List, Literal


class PumpResponse(BaseModel):
    success: bool = True
    count: int
    timestamp: int
    fetchedAt: int
    coins: List[Any]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class SnapshotMessage(BaseModel):
    type: Literal["initial", "update"]
    coins: List[Any]
    timestamp: int


class SourceStatsResponse(BaseModel):
    source_name: str
    status: str
    records_processed: int
    duration_ms: int
    error_log: Optional[str] = None
