"""
Match Pydantic schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Dict, Optional
from parcelmatch.app.models.match_enums import MatchStatus, PaymentStatus


class MatchResponse(BaseModel):
    """Schema for match response."""
    id: int
    parcel_id: int
    trip_id: int
    match_score: float
    status: MatchStatus
    delivery_fee: Optional[float]
    platform_fee: Optional[float]
    total_amount: Optional[float]
    currency: Optional[str]
    payment_status: PaymentStatus
    created_at: datetime
    accepted_at: Optional[datetime]
    paid_at: Optional[datetime]
    refunded_at: Optional[datetime]

    class Config:
        from_attributes = True


class ScorePreviewResponse(BaseModel):
    """Score breakdown for a parcel/trip pair, nothing stored."""
    parcel_id: int
    trip_id: int
    score: float
    feasible: bool
    subscores: Dict[str, float]
    pickup_distance_km: Optional[float] = None
    delivery_distance_km: Optional[float] = None
