"""
Trip Pydantic schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Optional, List
from parcelmatch.app.models.parcel_enums import CapacityClass
from parcelmatch.app.models.trip_enums import TripStatus
from parcelmatch.app.schemas.parcel import require_coordinate_pairs


class TripCreate(BaseModel):
    """Schema for publishing a trip."""
    origin_address: str = Field(..., min_length=1, max_length=500)
    origin_latitude: Optional[float] = Field(None, ge=-90, le=90)
    origin_longitude: Optional[float] = Field(None, ge=-180, le=180)
    destination_address: str = Field(..., min_length=1, max_length=500)
    destination_latitude: Optional[float] = Field(None, ge=-90, le=90)
    destination_longitude: Optional[float] = Field(None, ge=-180, le=180)
    departure_time: Optional[datetime] = None
    available_capacity: Optional[CapacityClass] = None

    @model_validator(mode="after")
    def coordinates_in_pairs(self):
        return require_coordinate_pairs(
            self,
            ("origin_latitude", "origin_longitude"),
            ("destination_latitude", "destination_longitude"),
        )


class TripStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1, max_length=32)


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    courier_id: int
    origin_address: str
    origin_latitude: Optional[float]
    origin_longitude: Optional[float]
    destination_address: str
    destination_latitude: Optional[float]
    destination_longitude: Optional[float]
    departure_time: Optional[datetime]
    available_capacity: Optional[CapacityClass]
    status: TripStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TripCreatedResponse(BaseModel):
    """Created trip plus the matches generated for it."""
    trip: TripResponse
    match_ids: List[int]
    matching_available: bool = True
