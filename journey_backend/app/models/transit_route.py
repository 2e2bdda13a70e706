"""
Transit route database model.

A route is an edge template between ranks. A route with intermediate
waypoints in `route_points` covers a chain of ranks.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from journey_backend.app.db.session import Base
from journey_backend.app.models.journey_enums import RouteType


class TransitRoute(Base):
    """
    Transit route model.

    route_points lists the full waypoint chain. Each entry is either a rank id
    or an object {"rank_id": ..., "fare": ..., "duration_minutes": ...,
    "distance_km": ...} carrying the weights of the segment ending there.
    An empty list means the plain origin -> destination edge.
    """
    __tablename__ = "transit_routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    route_name = Column(String(255), nullable=True)

    # Endpoints
    origin_rank_id = Column(Integer, ForeignKey('taxi_ranks.id'), nullable=False, index=True)
    destination_rank_id = Column(Integer, ForeignKey('taxi_ranks.id'), nullable=False, index=True)

    # Weights
    fare = Column(Float, nullable=False)
    duration_minutes = Column(Float, nullable=True)
    distance_km = Column(Float, nullable=True)

    route_type = Column(Enum(RouteType), default=RouteType.TAXI, nullable=False)
    is_direct = Column(Boolean, default=True, nullable=False)
    is_bidirectional = Column(Boolean, default=False, nullable=False)

    # Minutes a traveller waits to transfer after riding this route
    transfer_time_minutes = Column(Float, nullable=True)
    frequency_minutes = Column(Integer, default=30, nullable=False)

    route_points = Column(JSON, default=list, nullable=False)

    # Status
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<TransitRoute(id={self.id}, {self.origin_rank_id}->{self.destination_rank_id}, fare={self.fare})>"
