"""
Parcel database model.

A parcel is a sender's delivery request waiting to be carried by a trip.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base
from parcelmatch.app.models.parcel_enums import ParcelStatus


class Parcel(Base):
    """
    Parcel model.

    Coordinates and weight are optional; scoring falls back to neutral
    sub-scores when they are missing. Status is only changed through the
    status services, and parcels are never deleted (only delivered or
    cancelled).
    """
    __tablename__ = "parcels"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership - Parcel belongs to its sender
    sender_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    description = Column(String(500), nullable=True)

    # Pickup
    pickup_address = Column(String(500), nullable=False)
    pickup_latitude = Column(Float, nullable=True)
    pickup_longitude = Column(Float, nullable=True)

    # Delivery
    delivery_address = Column(String(500), nullable=False)
    delivery_latitude = Column(Float, nullable=True)
    delivery_longitude = Column(Float, nullable=True)

    # Physical properties
    weight_kg = Column(Float, nullable=True)

    # Status
    status = Column(Enum(ParcelStatus), default=ParcelStatus.PENDING, nullable=False, index=True)
    matched_trip_id = Column(Integer, ForeignKey('trips.id'), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Parcel(id={self.id}, sender_id={self.sender_id}, status='{self.status.value}')>"
