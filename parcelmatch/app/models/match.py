"""
Match database model.

Ensures a (parcel, trip) pair is stored at most once through a DB-level
unique constraint.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base
from parcelmatch.app.models.match_enums import MatchStatus, PaymentStatus


class Match(Base):
    """
    Match model.

    A scored candidate pairing of one parcel with one trip. Created by match
    generation; status changes on courier decisions; payment_status changes
    only on payment gateway events. Fees are filled in at acceptance.
    """
    __tablename__ = "parcel_trip_matches"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # References
    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey('trips.id'), nullable=False, index=True)

    match_score = Column(Float, nullable=False)
    status = Column(Enum(MatchStatus), default=MatchStatus.PENDING, nullable=False, index=True)

    # Fee breakdown (set on acceptance)
    delivery_fee = Column(Float, nullable=True)
    platform_fee = Column(Float, nullable=True)
    total_amount = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True)

    # Settlement
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.UNPAID, nullable=False, index=True)
    payment_intent_id = Column(String(255), nullable=True, unique=True, index=True)

    # Lifecycle
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    # Unique constraint: one row per (parcel, trip) pair
    __table_args__ = (
        UniqueConstraint('parcel_id', 'trip_id', name='uq_parcel_trip_matches_pair'),
    )

    def __repr__(self):
        return f"<Match(id={self.id}, parcel_id={self.parcel_id}, trip_id={self.trip_id}, status='{self.status.value}')>"
