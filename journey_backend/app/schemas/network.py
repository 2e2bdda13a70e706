"""
Network graph schemas.
"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class NetworkSummaryResponse(BaseModel):
    """State of this process's graph snapshot."""
    loaded: bool
    version: Optional[str]
    rank_count: int
    edge_count: int
    built_at: Optional[datetime]


class NetworkRefreshResponse(BaseModel):
    """Result of a network refresh request."""
    version: Optional[str]
    summary: NetworkSummaryResponse
