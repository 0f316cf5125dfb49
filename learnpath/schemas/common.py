"""
Common schema types used across the API.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: Optional[str] = None
    missing: Optional[List[str]] = None  # prerequisites_not_met only
    refill_at: Optional[datetime] = None  # out_of_lives only
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"
    catalog_nodes: int = 0
