"""
Journey schemas.

Request and response models for journey planning, lifecycle and analytics.
Range checks on ids, hop limits and ratings are left to the domain layer so
they surface as ERR_INPUT_001 rather than request validation errors.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from journey_backend.app.models.journey_enums import JourneyEvent, JourneyStatus, JourneyType, OptimizeFor


class PlanJourneyRequest(BaseModel):
    """Schema for planning a journey."""
    user_id: str = Field(..., min_length=1, max_length=64, description="Opaque traveller id")
    origin_rank_id: int
    destination_rank_id: int
    max_hops: Optional[int] = Field(None, description="Hop limit, defaults to configuration")
    optimize_for: Optional[OptimizeFor] = None


class RouteConnectionResponse(BaseModel):
    """Schema for one hop of a journey."""
    sequence_order: int
    route_id: int
    connection_rank_id: Optional[int]
    route_segment_index: int
    segment_fare: float
    segment_duration_minutes: float
    segment_distance_km: float
    waiting_time_minutes: float

    class Config:
        from_attributes = True


class Waypoint(BaseModel):
    rank_id: int
    latitude: Optional[float]
    longitude: Optional[float]


class JourneyResponse(BaseModel):
    """Schema for journey response."""
    journey_id: str
    user_id: str
    origin_rank_id: int
    destination_rank_id: int
    journey_type: JourneyType
    status: JourneyStatus
    hop_count: int
    total_fare: float
    total_duration_minutes: float
    total_distance_km: float
    route_path: List[int]
    waypoints: List[Waypoint] = []
    connections: List[RouteConnectionResponse] = []
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    rating: Optional[int]
    feedback: Optional[str]
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="meta_data")
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class JourneyListResponse(BaseModel):
    """Schema for paginated journey list."""
    journeys: List[JourneyResponse]
    total: int
    page: int
    page_size: int


class JourneyTransitionRequest(BaseModel):
    """Schema for applying a lifecycle event."""
    event: JourneyEvent
    cancellation_reason: Optional[str] = Field(None, max_length=1000)
    rating: Optional[int] = None
    feedback: Optional[str] = Field(None, max_length=2000)
    expected_status: Optional[JourneyStatus] = None
    expected_version: Optional[int] = None


class WaitingTimeUpdate(BaseModel):
    """Schema for correcting a hop's waiting time."""
    waiting_time_minutes: float
    expected_version: Optional[int] = None


class RouteOptionResponse(BaseModel):
    """One previewed alternative, not persisted."""
    optimize_for: OptimizeFor
    journey_type: JourneyType
    hop_count: int
    total_fare: float
    total_duration_minutes: float
    total_distance_km: float
    route_path: List[int]
    connections: List[RouteConnectionResponse]


class RouteOptionsResponse(BaseModel):
    origin_rank_id: int
    destination_rank_id: int
    options: List[RouteOptionResponse]


class JourneyStatsResponse(BaseModel):
    """Journey statistics for one traveller (or everyone)."""
    user_id: Optional[str]
    total_journeys: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    completed_journeys: int
    total_fare_spent: float
    total_distance_km: float
    average_fare: Optional[float]
    average_duration_minutes: Optional[float]
    average_rating: Optional[float]


class PopularRouteResponse(BaseModel):
    """Frequently planned origin/destination pair."""
    origin_rank_id: int
    origin_name: Optional[str]
    destination_rank_id: int
    destination_name: Optional[str]
    journey_count: int
    average_fare: float
