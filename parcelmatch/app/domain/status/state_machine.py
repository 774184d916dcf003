"""
Allowed status transitions for parcels, trips, matches and payments.
"""

import enum
from typing import Dict, FrozenSet, Type, TypeVar

from parcelmatch.app.core.exceptions import InvalidTransitionError, ValidationError
from parcelmatch.app.models.match_enums import MatchStatus, PaymentStatus
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.trip_enums import TripStatus

E = TypeVar("E", bound=enum.Enum)


# PENDING -> MATCHED happens only through match acceptance, never through a
# status request, so it is absent here.
PARCEL_TRANSITIONS: Dict[ParcelStatus, FrozenSet[ParcelStatus]] = {
    ParcelStatus.PENDING: frozenset(),
    ParcelStatus.MATCHED: frozenset({ParcelStatus.PICKED_UP, ParcelStatus.CANCELLED}),
    ParcelStatus.PICKED_UP: frozenset({ParcelStatus.IN_TRANSIT, ParcelStatus.CANCELLED}),
    ParcelStatus.IN_TRANSIT: frozenset({ParcelStatus.DELIVERED, ParcelStatus.CANCELLED}),
    ParcelStatus.DELIVERED: frozenset(),
    ParcelStatus.CANCELLED: frozenset(),
}

MATCH_TRANSITIONS: Dict[MatchStatus, FrozenSet[MatchStatus]] = {
    MatchStatus.PENDING: frozenset({MatchStatus.ACCEPTED, MatchStatus.REJECTED}),
    MatchStatus.ACCEPTED: frozenset(),
    MatchStatus.REJECTED: frozenset(),
}

# Driven only by payment gateway events
PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.UNPAID: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

TRIP_TRANSITIONS: Dict[TripStatus, FrozenSet[TripStatus]] = {
    TripStatus.SCHEDULED: frozenset({TripStatus.IN_PROGRESS, TripStatus.CANCELLED}),
    TripStatus.IN_PROGRESS: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}


def parse_status(enum_cls: Type[E], value, field: str = "status") -> E:
    """Coerce a raw status value, rejecting anything outside the enum."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value.lower() if isinstance(value, str) else value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(field, f"Unknown {field} '{value}'; expected one of: {allowed}")


def can_transition(transitions: Dict[E, FrozenSet[E]], current: E, requested: E) -> bool:
    return requested in transitions.get(current, frozenset())


def _validate(entity: str, transitions: Dict[E, FrozenSet[E]], current: E, requested: E) -> None:
    if not can_transition(transitions, current, requested):
        raise InvalidTransitionError(
            entity,
            current.value,
            requested.value,
            [status.value for status in transitions.get(current, ())]
        )


def validate_parcel_transition(current: ParcelStatus, requested: ParcelStatus) -> None:
    _validate("parcel", PARCEL_TRANSITIONS, current, requested)


def validate_match_transition(current: MatchStatus, requested: MatchStatus) -> None:
    _validate("match", MATCH_TRANSITIONS, current, requested)


def validate_payment_transition(current: PaymentStatus, requested: PaymentStatus) -> None:
    _validate("payment", PAYMENT_TRANSITIONS, current, requested)


def validate_trip_transition(current: TripStatus, requested: TripStatus) -> None:
    _validate("trip", TRIP_TRANSITIONS, current, requested)
