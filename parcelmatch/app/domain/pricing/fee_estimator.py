"""
Delivery fee estimation.

Quotes the fee breakdown stored on a match when the courier accepts it.
The fee is driven by the parcel's own pickup -> delivery distance and its
size class; the platform takes a commission on top of the delivery fee.
"""

from typing import Any, Optional

from pydantic import BaseModel

from parcelmatch.app.core.config import Settings, settings as app_settings
from parcelmatch.app.domain.matching.scoring import parcel_size_class, read_coordinates
from parcelmatch.app.models.parcel_enums import CapacityClass
from parcelmatch.app.services.geo import haversine_distance


# Larger parcels cost more
SIZE_MULTIPLIERS = {
    CapacityClass.SMALL: 0.9,
    CapacityClass.MEDIUM: 1.0,
    CapacityClass.LARGE: 1.2,
}


class PricingTerms(BaseModel):
    """Rates used for a quote."""
    base_fee: float
    rate_per_km: float
    max_distance_km: Optional[float] = None
    commission_percent: float
    currency: str

    @classmethod
    def from_settings(cls, source: Settings = None) -> "PricingTerms":
        source = source or app_settings
        return cls(
            base_fee=source.pricing_base_fee,
            rate_per_km=source.pricing_rate_per_km,
            max_distance_km=source.pricing_max_distance_km,
            commission_percent=source.platform_commission_percent,
            currency=source.pricing_currency,
        )


class FeeBreakdown(BaseModel):
    """Fee breakdown persisted on an accepted match."""
    delivery_fee: float
    platform_fee: float
    total_amount: float
    currency: str
    distance_km: float


def estimate_delivery_fee(
    distance_km: float,
    parcel_size: Optional[CapacityClass],
    terms: PricingTerms
) -> FeeBreakdown:
    """
    Price a delivery.

    delivery_fee = (base_fee + capped distance * rate_per_km) * size multiplier
    platform_fee = commission_percent of delivery_fee
    Both rounded to cents; total_amount is their sum.
    """
    effective_distance = distance_km
    if terms.max_distance_km is not None and distance_km > terms.max_distance_km:
        effective_distance = terms.max_distance_km

    multiplier = SIZE_MULTIPLIERS.get(parcel_size, 1.0)
    delivery_fee = max(0.0, (terms.base_fee + effective_distance * terms.rate_per_km) * multiplier)
    delivery_fee = round(delivery_fee, 2)
    platform_fee = round(delivery_fee * terms.commission_percent / 100, 2)

    return FeeBreakdown(
        delivery_fee=delivery_fee,
        platform_fee=platform_fee,
        total_amount=round(delivery_fee + platform_fee, 2),
        currency=terms.currency,
        distance_km=round(distance_km, 3),
    )


def parcel_route_distance(parcel: Any) -> float:
    """Pickup -> delivery distance in km, 0 when either end has no coordinates."""
    pickup = read_coordinates(parcel, "pickup_latitude", "pickup_longitude")
    delivery = read_coordinates(parcel, "delivery_latitude", "delivery_longitude")
    if pickup is None or delivery is None:
        return 0.0
    return haversine_distance(pickup[0], pickup[1], delivery[0], delivery[1])


async def quote_parcel_fee(parcel: Any, terms: Optional[PricingTerms] = None) -> FeeBreakdown:
    """
    Default fee quoter used by match acceptance.

    Async so a remote pricing service can be swapped in behind the same
    circuit breaker.
    """
    terms = terms or PricingTerms.from_settings()
    return estimate_delivery_fee(
        parcel_route_distance(parcel),
        parcel_size_class(getattr(parcel, "weight_kg", None)),
        terms
    )
