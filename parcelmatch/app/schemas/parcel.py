"""
Parcel Pydantic schemas.

Defines request and response models for parcel endpoints.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Optional, List
from parcelmatch.app.models.parcel_enums import ParcelStatus


def require_coordinate_pairs(values, *pairs):
    """A coordinate pair must be given in full or not at all."""
    for lat_field, lng_field in pairs:
        lat, lng = getattr(values, lat_field), getattr(values, lng_field)
        if (lat is None) != (lng is None):
            raise ValueError(f"{lat_field} and {lng_field} must be provided together")
    return values


class ParcelCreate(BaseModel):
    """Schema for creating a new parcel."""
    description: Optional[str] = Field(None, max_length=500, description="Parcel description")
    pickup_address: str = Field(..., min_length=1, max_length=500)
    pickup_latitude: Optional[float] = Field(None, ge=-90, le=90)
    pickup_longitude: Optional[float] = Field(None, ge=-180, le=180)
    delivery_address: str = Field(..., min_length=1, max_length=500)
    delivery_latitude: Optional[float] = Field(None, ge=-90, le=90)
    delivery_longitude: Optional[float] = Field(None, ge=-180, le=180)
    weight_kg: Optional[float] = Field(None, gt=0, description="Weight in kilograms")

    @model_validator(mode="after")
    def coordinates_in_pairs(self):
        return require_coordinate_pairs(
            self,
            ("pickup_latitude", "pickup_longitude"),
            ("delivery_latitude", "delivery_longitude"),
        )


class ParcelStatusUpdate(BaseModel):
    """Schema for a courier/admin status change."""
    status: str = Field(..., min_length=1, max_length=32)
    notes: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=500)


class ParcelResponse(BaseModel):
    """Schema for parcel response."""
    id: int
    sender_id: int
    description: Optional[str]
    pickup_address: str
    pickup_latitude: Optional[float]
    pickup_longitude: Optional[float]
    delivery_address: str
    delivery_latitude: Optional[float]
    delivery_longitude: Optional[float]
    weight_kg: Optional[float]
    status: ParcelStatus
    matched_trip_id: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ParcelCreatedResponse(BaseModel):
    """Created parcel plus the matches generated for it."""
    parcel: ParcelResponse
    match_ids: List[int]
    matching_available: bool = True


class ParcelStatusHistoryResponse(BaseModel):
    """Schema for one parcel status history entry."""
    id: int
    parcel_id: int
    status: ParcelStatus
    notes: Optional[str]
    location: Optional[str]
    actor_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True
