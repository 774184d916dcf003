"""
Audit Log Database Model.

Tracks who changed which parcel, trip or match, for dispute handling.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - PARCEL_CREATED / TRIP_CREATED
    - MATCH_CREATED / MATCH_ACCEPTED / MATCH_REJECTED
    - PARCEL_STATUS_CHANGED / TRIP_STATUS_CHANGED
    - PAYMENT_CONFIRMED / PAYMENT_REFUNDED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions and gateway events)
    actor_id = Column(Integer, index=True, nullable=True)

    action = Column(String(100), nullable=False, index=True)

    # What was acted upon
    entity_type = Column(String(50), nullable=True, index=True)
    entity_id = Column(Integer, nullable=True, index=True)

    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
