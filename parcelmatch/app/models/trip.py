"""
Trip database model.

Trips are published by couriers and offer carrying capacity along a route.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base
from parcelmatch.app.models.parcel_enums import CapacityClass
from parcelmatch.app.models.trip_enums import TripStatus


class Trip(Base):
    """
    Trip model.

    One trip may receive many candidate matches; which parcel it carries is
    decided when the courier accepts one of them.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership - Trip belongs to its courier
    courier_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Route
    origin_address = Column(String(500), nullable=False)
    origin_latitude = Column(Float, nullable=True)
    origin_longitude = Column(Float, nullable=True)
    destination_address = Column(String(500), nullable=False)
    destination_latitude = Column(Float, nullable=True)
    destination_longitude = Column(Float, nullable=True)

    departure_time = Column(DateTime(timezone=True), nullable=True)
    available_capacity = Column(Enum(CapacityClass), nullable=True)

    # Status
    status = Column(Enum(TripStatus), default=TripStatus.SCHEDULED, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Trip(id={self.id}, courier_id={self.courier_id}, status='{self.status.value}')>"
