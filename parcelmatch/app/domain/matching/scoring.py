"""
Match scoring engine.

Combines four sub-scores, each in [0, 100], into one weighted match score:

- route alignment: parcel pickup/delivery close to trip origin/destination,
  with a hard cutoff when either leg deviates beyond its threshold
- proximity: the same two legs against a wider radius, no cutoff
- time compatibility: lead time until the trip departs
- capacity fit: parcel size class against the trip's capacity class

Geographic and capacity infeasibility eliminate a candidate outright (the
aggregate becomes 0); time and partial proximity only nudge the ranking of
feasible candidates.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel

from parcelmatch.app.core.exceptions import ValidationError
from parcelmatch.app.db.session import as_utc, utc_now
from parcelmatch.app.domain.matching.config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from parcelmatch.app.models.parcel_enums import CapacityClass
from parcelmatch.app.services.geo import haversine_distance, proximity_score

logger = logging.getLogger("parcelmatch.matching")

# Neutral fallbacks when an input is unknown
MISSING_COORDINATES_ALIGNMENT_SCORE = 50.0
MISSING_COORDINATES_PROXIMITY_SCORE = 40.0
NO_DEPARTURE_TIME_SCORE = 70.0
MISSING_CAPACITY_SCORE = 70.0
UNKNOWN_PARCEL_SIZE_SCORE = 60.0

# Parcel size buckets by weight (kg, inclusive upper bounds)
SMALL_MAX_WEIGHT_KG = 2.0
MEDIUM_MAX_WEIGHT_KG = 10.0

# Trip capacity classes above the parcel's class -> score
_CAPACITY_SLACK_SCORES = {0: 100.0, 1: 80.0, 2: 60.0}


class MatchScore(BaseModel):
    """Aggregate score plus the breakdown it was built from."""
    score: float
    subscores: Dict[str, float]
    feasible: bool
    pickup_distance_km: Optional[float] = None
    delivery_distance_km: Optional[float] = None


def read_coordinates(entity: Any, lat_field: str, lng_field: str) -> Optional[Tuple[float, float]]:
    """
    Read a latitude/longitude pair off a parcel or trip.

    Returns None when both halves are missing. Raises ValidationError for a
    half-present, NaN or out-of-range pair.
    """
    lat = getattr(entity, lat_field, None)
    lng = getattr(entity, lng_field, None)

    if lat is None and lng is None:
        return None
    if lat is None:
        raise ValidationError(lat_field, f"{lat_field} is required when {lng_field} is set")
    if lng is None:
        raise ValidationError(lng_field, f"{lng_field} is required when {lat_field} is set")

    lat, lng = float(lat), float(lng)
    if math.isnan(lat) or not -90.0 <= lat <= 90.0:
        raise ValidationError(lat_field, f"{lat_field} must be between -90 and 90")
    if math.isnan(lng) or not -180.0 <= lng <= 180.0:
        raise ValidationError(lng_field, f"{lng_field} must be between -180 and 180")

    return lat, lng


def leg_distances(parcel: Any, trip: Any) -> Optional[Tuple[float, float]]:
    """
    Distances (km) pickup -> trip origin and delivery -> trip destination.

    None when any of the four points has no coordinates.
    """
    pickup = read_coordinates(parcel, "pickup_latitude", "pickup_longitude")
    delivery = read_coordinates(parcel, "delivery_latitude", "delivery_longitude")
    origin = read_coordinates(trip, "origin_latitude", "origin_longitude")
    destination = read_coordinates(trip, "destination_latitude", "destination_longitude")

    if pickup is None or delivery is None or origin is None or destination is None:
        return None

    return (
        haversine_distance(pickup[0], pickup[1], origin[0], origin[1]),
        haversine_distance(delivery[0], delivery[1], destination[0], destination[1]),
    )


def route_alignment_score(pickup_km: float, delivery_km: float, config: MatchingConfig = DEFAULT_MATCHING_CONFIG) -> float:
    """Mean leg closeness, or 0 if either leg exceeds its deviation threshold."""
    if pickup_km > config.max_pickup_deviation_km or delivery_km > config.max_delivery_deviation_km:
        return 0.0

    pickup_score = proximity_score(pickup_km, config.max_pickup_deviation_km)
    delivery_score = proximity_score(delivery_km, config.max_delivery_deviation_km)
    return (pickup_score + delivery_score) / 2


def route_is_infeasible(pickup_km: float, delivery_km: float, config: MatchingConfig = DEFAULT_MATCHING_CONFIG) -> bool:
    return pickup_km > config.max_pickup_deviation_km or delivery_km > config.max_delivery_deviation_km


def geographic_proximity_score(pickup_km: float, delivery_km: float, config: MatchingConfig = DEFAULT_MATCHING_CONFIG) -> float:
    """Mean leg closeness against the wider proximity radius."""
    pickup_score = proximity_score(pickup_km, config.max_proximity_km)
    delivery_score = proximity_score(delivery_km, config.max_proximity_km)
    return (pickup_score + delivery_score) / 2


def time_compatibility_score(departure_time: Optional[datetime], now: Optional[datetime] = None) -> float:
    """
    Score the lead time before a trip departs.

    No departure -> 70, already departed -> 0, under 1 hour -> 30,
    under 24 hours -> 70, otherwise 90.
    """
    if departure_time is None:
        return NO_DEPARTURE_TIME_SCORE

    now = as_utc(now) if now else utc_now()
    hours_until_departure = (as_utc(departure_time) - now).total_seconds() / 3600

    if hours_until_departure < 0:
        return 0.0
    if hours_until_departure < 1:
        return 30.0
    if hours_until_departure < 24:
        return 70.0
    return 90.0


def parcel_size_class(weight_kg: Optional[float]) -> Optional[CapacityClass]:
    """Bucket a parcel by weight; None when the weight is unknown."""
    if weight_kg is None:
        return None

    weight_kg = float(weight_kg)
    if math.isnan(weight_kg) or weight_kg < 0:
        raise ValidationError("weight_kg", "weight_kg must be a non-negative number")

    if weight_kg <= SMALL_MAX_WEIGHT_KG:
        return CapacityClass.SMALL
    if weight_kg <= MEDIUM_MAX_WEIGHT_KG:
        return CapacityClass.MEDIUM
    return CapacityClass.LARGE


def _capacity_class(value: Any) -> CapacityClass:
    try:
        return CapacityClass(value.lower() if isinstance(value, str) else value)
    except ValueError:
        raise ValidationError("available_capacity", f"Unknown capacity class: {value}")


def capacity_score(weight_kg: Optional[float], available_capacity: Any) -> float:
    """
    Score how well a parcel fits the trip's capacity class.

    Exact class -> 100, one class of slack -> 80, two -> 60, too small -> 0.
    """
    if available_capacity is None:
        return MISSING_CAPACITY_SCORE

    capacity = _capacity_class(available_capacity)
    size = parcel_size_class(weight_kg)
    if size is None:
        return UNKNOWN_PARCEL_SIZE_SCORE

    slack = capacity.rank - size.rank
    if slack < 0:
        return 0.0
    return _CAPACITY_SLACK_SCORES[slack]


def score_match(
    parcel: Any,
    trip: Any,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    now: Optional[datetime] = None
) -> MatchScore:
    """
    Score a parcel/trip pair.

    Works on ORM rows or any object exposing the same attribute names.
    Pure apart from reading the clock when `now` is not given.

    Raises:
        ValidationError: for malformed coordinates, weight or capacity class
    """
    legs = leg_distances(parcel, trip)
    feasible = True

    if legs is None:
        pickup_km = delivery_km = None
        alignment = MISSING_COORDINATES_ALIGNMENT_SCORE
        proximity = MISSING_COORDINATES_PROXIMITY_SCORE
    else:
        pickup_km, delivery_km = legs
        alignment = route_alignment_score(pickup_km, delivery_km, config)
        proximity = geographic_proximity_score(pickup_km, delivery_km, config)
        if route_is_infeasible(pickup_km, delivery_km, config):
            feasible = False

    time_score = time_compatibility_score(getattr(trip, "departure_time", None), now)
    capacity = capacity_score(getattr(parcel, "weight_kg", None), getattr(trip, "available_capacity", None))
    if capacity == 0:
        feasible = False

    subscores = {
        "route_alignment": round(alignment, 2),
        "proximity": round(proximity, 2),
        "time_compatibility": time_score,
        "capacity": capacity,
    }

    total = (
        alignment * config.route_alignment_weight
        + proximity * config.proximity_weight
        + time_score * config.time_weight
        + capacity * config.capacity_weight
    )
    score = round(total, 2) if feasible else 0.0

    logger.debug(
        "Score for parcel %s <-> trip %s: %.2f (feasible=%s, subscores=%s, legs=%s)",
        getattr(parcel, "id", None),
        getattr(trip, "id", None),
        score,
        feasible,
        subscores,
        legs,
    )

    return MatchScore(
        score=score,
        subscores=subscores,
        feasible=feasible,
        pickup_distance_km=round(pickup_km, 3) if pickup_km is not None else None,
        delivery_distance_km=round(delivery_km, 3) if delivery_km is not None else None,
    )


def validate_parcel_fields(parcel: Any) -> None:
    """Reject a parcel whose coordinates or weight cannot be scored."""
    read_coordinates(parcel, "pickup_latitude", "pickup_longitude")
    read_coordinates(parcel, "delivery_latitude", "delivery_longitude")
    parcel_size_class(getattr(parcel, "weight_kg", None))


def validate_trip_fields(trip: Any) -> None:
    """Reject a trip whose coordinates or capacity class cannot be scored."""
    read_coordinates(trip, "origin_latitude", "origin_longitude")
    read_coordinates(trip, "destination_latitude", "destination_longitude")
    if getattr(trip, "available_capacity", None) is not None:
        _capacity_class(trip.available_capacity)
