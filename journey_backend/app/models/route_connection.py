"""
Route connection database model.

One ordered hop within a journey.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from journey_backend.app.db.session import Base


class RouteConnection(Base):
    """
    Route connection model.

    sequence_order is 1-based and gapless within a journey. connection_rank_id
    is the rank where this hop ends; it is empty on the final hop.
    """
    __tablename__ = "route_connections"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    journey_id = Column(
        String(36),
        ForeignKey('journeys.journey_id', ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    route_id = Column(Integer, ForeignKey('transit_routes.id'), nullable=False, index=True)

    sequence_order = Column(Integer, nullable=False)  # 1, 2, 3, ...
    connection_rank_id = Column(Integer, ForeignKey('taxi_ranks.id'), nullable=True)

    # Position of this unit edge in its route's waypoint chain
    route_segment_index = Column(Integer, default=0, nullable=False)

    segment_fare = Column(Float, nullable=False)
    segment_duration_minutes = Column(Float, nullable=False)
    segment_distance_km = Column(Float, nullable=False)
    waiting_time_minutes = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    journey = relationship("Journey", back_populates="connections")

    __table_args__ = (
        UniqueConstraint('journey_id', 'sequence_order', name='uq_route_connections_sequence'),
    )

    def __repr__(self):
        return f"<RouteConnection(journey_id='{self.journey_id}', seq={self.sequence_order}, route_id={self.route_id})>"
