"""
Delivery fee estimation tests.
"""

from types import SimpleNamespace

import pytest

from parcelmatch.app.core.exceptions import ValidationError
from parcelmatch.app.domain.pricing.fee_estimator import (
    PricingTerms,
    estimate_delivery_fee,
    parcel_route_distance,
    quote_parcel_fee,
)
from parcelmatch.app.models.parcel_enums import CapacityClass

TERMS = PricingTerms(base_fee=5.0, rate_per_km=0.5, commission_percent=15.0, currency="USD")


def test_medium_parcel_fee():
    fees = estimate_delivery_fee(10.0, CapacityClass.MEDIUM, TERMS)

    assert fees.delivery_fee == 10.0
    assert fees.platform_fee == 1.5
    assert fees.total_amount == 11.5
    assert fees.currency == "USD"


@pytest.mark.parametrize("size,expected", [
    (CapacityClass.SMALL, 9.0),
    (CapacityClass.MEDIUM, 10.0),
    (CapacityClass.LARGE, 12.0),
    (None, 10.0),
])
def test_size_multiplier(size, expected):
    assert estimate_delivery_fee(10.0, size, TERMS).delivery_fee == expected


def test_distance_cap():
    capped = TERMS.model_copy(update={"max_distance_km": 100.0})

    assert estimate_delivery_fee(500.0, CapacityClass.MEDIUM, capped).delivery_fee == 55.0
    assert estimate_delivery_fee(500.0, CapacityClass.MEDIUM, TERMS).delivery_fee == 255.0


def test_amounts_are_rounded_to_cents():
    fees = estimate_delivery_fee(3.333, CapacityClass.SMALL, TERMS)

    assert fees.delivery_fee == round(fees.delivery_fee, 2)
    assert fees.platform_fee == round(fees.platform_fee, 2)
    assert fees.total_amount == pytest.approx(fees.delivery_fee + fees.platform_fee)


def test_route_distance_is_zero_without_coordinates():
    parcel = SimpleNamespace(
        pickup_latitude=None, pickup_longitude=None,
        delivery_latitude=53.4808, delivery_longitude=-2.2426,
    )
    assert parcel_route_distance(parcel) == 0.0


def test_route_distance_rejects_half_pair():
    parcel = SimpleNamespace(
        pickup_latitude=51.5074, pickup_longitude=None,
        delivery_latitude=53.4808, delivery_longitude=-2.2426,
    )
    with pytest.raises(ValidationError) as exc_info:
        parcel_route_distance(parcel)
    assert exc_info.value.field == "pickup_longitude"


async def test_quote_uses_parcel_route_and_weight():
    parcel = SimpleNamespace(
        id=1,
        pickup_latitude=51.5074, pickup_longitude=-0.1278,
        delivery_latitude=53.4808, delivery_longitude=-2.2426,
        weight_kg=15.0,
    )

    fees = await quote_parcel_fee(parcel, TERMS)

    assert fees.distance_km == pytest.approx(262, abs=2)
    assert fees.delivery_fee == pytest.approx((5.0 + fees.distance_km * 0.5) * 1.2, abs=0.02)
