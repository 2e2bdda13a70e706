"""
Audit Log Database Model.

Tracks journey lifecycle events and network refreshes.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from journey_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - JOURNEY_PLANNED / JOURNEY_STARTED / JOURNEY_COMPLETED / JOURNEY_CANCELLED
    - JOURNEY_RATED / JOURNEY_WAITING_CORRECTED
    - NETWORK_REFRESHED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(String(64), index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Journey the action applies to
    journey_id = Column(String(36), index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', journey_id={self.journey_id})>"
