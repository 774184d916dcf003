"""
Match scoring configuration.

Immutable weights and distance thresholds for the scoring engine. Defaults
mirror the settings defaults:

    route_alignment_weight     0.4   pickup/delivery near trip origin/destination
    proximity_weight           0.3   softer geographic signal, no cutoff
    time_weight                0.2   lead time before departure
    capacity_weight            0.1   parcel size vs trip capacity
    max_pickup_deviation_km    10    route alignment cutoff, pickup leg
    max_delivery_deviation_km  10    route alignment cutoff, delivery leg
    max_proximity_km           50    proximity scoring radius
"""

import math

from pydantic import BaseModel, ConfigDict, Field, model_validator

from parcelmatch.app.core.config import Settings, settings as app_settings


class MatchingConfig(BaseModel):
    """Frozen scoring configuration; build variants with model_copy(update=...)."""

    model_config = ConfigDict(frozen=True)

    route_alignment_weight: float = Field(0.4, ge=0, le=1)
    proximity_weight: float = Field(0.3, ge=0, le=1)
    time_weight: float = Field(0.2, ge=0, le=1)
    capacity_weight: float = Field(0.1, ge=0, le=1)

    max_pickup_deviation_km: float = Field(10.0, gt=0)
    max_delivery_deviation_km: float = Field(10.0, gt=0)
    max_proximity_km: float = Field(50.0, gt=0)

    @model_validator(mode="after")
    def weights_sum_to_one(self) -> "MatchingConfig":
        total = self.route_alignment_weight + self.proximity_weight + self.time_weight + self.capacity_weight
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.4f}")
        return self

    @classmethod
    def from_settings(cls, source: Settings = None) -> "MatchingConfig":
        source = source or app_settings
        return cls(
            route_alignment_weight=source.route_alignment_weight,
            proximity_weight=source.proximity_weight,
            time_weight=source.time_weight,
            capacity_weight=source.capacity_weight,
            max_pickup_deviation_km=source.max_pickup_deviation_km,
            max_delivery_deviation_km=source.max_delivery_deviation_km,
            max_proximity_km=source.max_proximity_km,
        )


DEFAULT_MATCHING_CONFIG = MatchingConfig()
