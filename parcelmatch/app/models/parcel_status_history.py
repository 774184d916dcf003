"""
Parcel status history model.

Append-only record of every parcel status change.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base
from parcelmatch.app.models.parcel_enums import ParcelStatus


class ParcelStatusHistory(Base):
    """One row per status a parcel entered, with optional courier notes."""
    __tablename__ = "parcel_status_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)
    status = Column(Enum(ParcelStatus), nullable=False)
    notes = Column(String(1000), nullable=True)
    location = Column(String(500), nullable=True)
    actor_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<ParcelStatusHistory(parcel_id={self.parcel_id}, status='{self.status.value}')>"
