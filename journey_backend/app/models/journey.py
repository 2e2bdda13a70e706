"""
Journey database model.

A journey is the persisted aggregate produced by route resolution. Its
totals are derived from its route connections and never set directly.
"""

from sqlalchemy import Column, Integer, String, Float, Text, DateTime, Enum, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from journey_backend.app.db.session import Base
from journey_backend.app.models.journey_enums import JourneyStatus, JourneyType


class Journey(Base):
    """
    Journey model.

    `version` is the optimistic-lock counter: every UPDATE is issued with
    `WHERE version = <loaded version>`.
    """
    __tablename__ = "journeys"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Stable external id (UUID string)
    journey_id = Column(String(36), unique=True, nullable=False, index=True)

    # Traveller (opaque id supplied by the auth layer)
    user_id = Column(String(64), nullable=False, index=True)

    origin_rank_id = Column(Integer, ForeignKey('taxi_ranks.id'), nullable=False, index=True)
    destination_rank_id = Column(Integer, ForeignKey('taxi_ranks.id'), nullable=False, index=True)

    # Aggregates
    total_fare = Column(Float, default=0.0, nullable=False)
    total_duration_minutes = Column(Float, default=0.0, nullable=False)
    total_distance_km = Column(Float, default=0.0, nullable=False)
    hop_count = Column(Integer, default=0, nullable=False)
    route_path = Column(JSON, default=list, nullable=False)
    waypoints = Column(JSON, default=list, nullable=False)

    journey_type = Column(Enum(JourneyType), nullable=False, index=True)
    status = Column(Enum(JourneyStatus), default=JourneyStatus.PLANNED, nullable=False, index=True)

    # Lifecycle timestamps
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Feedback (only after completion)
    rating = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=True)

    meta_data = Column("metadata", JSON, default=dict, nullable=False)

    version = Column(Integer, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    connections = relationship(
        "RouteConnection",
        back_populates="journey",
        order_by="RouteConnection.sequence_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        status = self.status.value if self.status else None
        return f"<Journey(journey_id='{self.journey_id}', type='{self.journey_type}', status='{status}')>"
