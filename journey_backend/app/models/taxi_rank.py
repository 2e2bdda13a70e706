"""
Taxi rank database model.

A rank is a node of the transit network.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text, JSON
from sqlalchemy.sql import func
from journey_backend.app.db.session import Base


class TaxiRank(Base):
    """
    Taxi rank model.

    Inactive ranks are kept for history but never take part in route resolution.
    """
    __tablename__ = "taxi_ranks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Rank details
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    province = Column(String(100), nullable=True)

    # Geolocation
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    capacity = Column(Integer, default=0, nullable=False)
    facilities = Column(JSON, default=dict, nullable=False)

    # Status (soft delete)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<TaxiRank(id={self.id}, name='{self.name}', active={self.is_active})>"
