"""
Parcel and trip status transition tests.
"""

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from parcelmatch.app.core.exceptions import (
    ConflictError,
    DependencyUnavailableError,
    InsufficientPermissionsError,
    InvalidTransitionError,
    ValidationError,
)
from parcelmatch.app.domain.status.parcel_status import transition_parcel_status, transition_trip_status
from parcelmatch.app.domain.status.state_machine import (
    PARCEL_TRANSITIONS,
    can_transition,
    validate_parcel_transition,
)
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.match_enums import MatchStatus
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.parcel_status_history import ParcelStatusHistory
from parcelmatch.app.models.trip_enums import TripStatus


@pytest.fixture
async def matched_parcel(make_user, make_parcel, make_trip):
    """A parcel already matched to a courier's trip."""
    sender = await make_user(UserRole.SENDER)
    courier = await make_user(UserRole.COURIER)
    trip = await make_trip(courier)
    parcel = await make_parcel(sender, status=ParcelStatus.MATCHED, matched_trip_id=trip.id)
    return parcel, trip, courier, sender


@pytest.mark.parametrize("requested", list(ParcelStatus))
def test_delivered_is_terminal(requested):
    with pytest.raises(InvalidTransitionError):
        validate_parcel_transition(ParcelStatus.DELIVERED, requested)


def test_pending_cannot_be_moved_by_request():
    """Only match acceptance moves a parcel out of pending."""
    assert not can_transition(PARCEL_TRANSITIONS, ParcelStatus.PENDING, ParcelStatus.MATCHED)


def test_invalid_transition_reports_allowed_states():
    with pytest.raises(InvalidTransitionError) as exc_info:
        validate_parcel_transition(ParcelStatus.MATCHED, ParcelStatus.DELIVERED)

    details = exc_info.value.details
    assert details["current"] == "matched"
    assert details["requested"] == "delivered"
    assert details["allowed"] == ["cancelled", "picked_up"]


async def test_courier_walks_parcel_to_delivered(db_session, matched_parcel):
    parcel, _, courier, _ = matched_parcel

    for status in ("picked_up", "in_transit", "delivered"):
        new_status = await transition_parcel_status(db_session, parcel.id, status, courier.id, location="Depot")
        assert new_status == ParcelStatus(status)

    await db_session.refresh(parcel)
    assert parcel.status == ParcelStatus.DELIVERED

    result = await db_session.execute(
        select(ParcelStatusHistory.status)
        .where(ParcelStatusHistory.parcel_id == parcel.id)
        .order_by(ParcelStatusHistory.id)
    )
    assert list(result.scalars().all()) == [
        ParcelStatus.PICKED_UP, ParcelStatus.IN_TRANSIT, ParcelStatus.DELIVERED
    ]


async def test_delivered_parcel_rejects_further_changes(db_session, make_user, make_parcel, make_trip):
    courier = await make_user(UserRole.COURIER)
    sender = await make_user(UserRole.SENDER)
    trip = await make_trip(courier)
    parcel = await make_parcel(sender, status=ParcelStatus.DELIVERED, matched_trip_id=trip.id)

    with pytest.raises(InvalidTransitionError):
        await transition_parcel_status(db_session, parcel.id, "cancelled", courier.id)


async def test_skipping_a_step_is_rejected(db_session, matched_parcel):
    parcel, _, courier, _ = matched_parcel

    with pytest.raises(InvalidTransitionError) as exc_info:
        await transition_parcel_status(db_session, parcel.id, "delivered", courier.id)
    assert exc_info.value.details["allowed"] == ["cancelled", "picked_up"]


async def test_unknown_status_is_a_validation_error(db_session, matched_parcel):
    parcel, _, courier, _ = matched_parcel

    with pytest.raises(ValidationError) as exc_info:
        await transition_parcel_status(db_session, parcel.id, "teleported", courier.id)
    assert exc_info.value.field == "status"


async def test_other_courier_cannot_update(db_session, matched_parcel, make_user):
    parcel, _, _, sender = matched_parcel
    stranger = await make_user(UserRole.COURIER)

    with pytest.raises(InsufficientPermissionsError):
        await transition_parcel_status(db_session, parcel.id, "picked_up", stranger.id)
    with pytest.raises(InsufficientPermissionsError):
        await transition_parcel_status(db_session, parcel.id, "picked_up", sender.id)


async def test_courier_role_is_resolved_from_store(db_session, matched_parcel, make_trip, make_user):
    """Moving the parcel to another trip revokes the old courier's rights."""
    parcel, _, courier, _ = matched_parcel
    other_courier = await make_user(UserRole.COURIER)
    other_trip = await make_trip(other_courier)

    parcel.matched_trip_id = other_trip.id
    await db_session.commit()

    with pytest.raises(InsufficientPermissionsError):
        await transition_parcel_status(db_session, parcel.id, "picked_up", courier.id)
    assert await transition_parcel_status(db_session, parcel.id, "picked_up", other_courier.id) == ParcelStatus.PICKED_UP


async def test_admin_can_cancel(db_session, matched_parcel, make_user):
    parcel, _, _, _ = matched_parcel
    admin = await make_user(UserRole.ADMIN)

    assert await transition_parcel_status(db_session, parcel.id, "cancelled", admin.id) == ParcelStatus.CANCELLED


async def test_lost_race_is_a_conflict(db_session, matched_parcel):
    """Another writer moved the parcel after this session read it."""
    parcel, _, courier, _ = matched_parcel

    async with AsyncSession(db_session.bind) as other:
        await other.execute(
            update(Parcel).where(Parcel.id == parcel.id).values(status=ParcelStatus.CANCELLED)
        )
        await other.commit()

    # db_session still holds the stale MATCHED row in its identity map
    assert parcel.status == ParcelStatus.MATCHED
    with pytest.raises(ConflictError):
        await transition_parcel_status(db_session, parcel.id, "picked_up", courier.id)


async def test_trip_lifecycle_and_cancellation_rejects_pending_matches(db_session, make_user, make_parcel, make_trip):
    courier = await make_user(UserRole.COURIER)
    sender = await make_user(UserRole.SENDER)
    trip = await make_trip(courier)
    parcel = await make_parcel(sender)
    match = Match(parcel_id=parcel.id, trip_id=trip.id, match_score=80.0)
    db_session.add(match)
    await db_session.commit()

    assert await transition_trip_status(db_session, trip.id, "in_progress", courier.id) == TripStatus.IN_PROGRESS
    with pytest.raises(InvalidTransitionError):
        await transition_trip_status(db_session, trip.id, "scheduled", courier.id)
    assert await transition_trip_status(db_session, trip.id, "cancelled", courier.id) == TripStatus.CANCELLED

    await db_session.refresh(match)
    assert match.status == MatchStatus.REJECTED


async def test_only_trip_courier_changes_trip(db_session, make_user, make_trip):
    courier = await make_user(UserRole.COURIER)
    other = await make_user(UserRole.COURIER)
    trip = await make_trip(courier)

    with pytest.raises(InsufficientPermissionsError):
        await transition_trip_status(db_session, trip.id, "in_progress", other.id)


async def test_store_outage_on_lookup_is_unavailable(db_session, matched_parcel, mocker):
    parcel, trip, courier, sender = matched_parcel
    mocker.patch.object(
        db_session,
        "execute",
        side_effect=OperationalError("SELECT", {}, Exception("connection refused"))
    )

    with pytest.raises(DependencyUnavailableError) as exc_info:
        await transition_parcel_status(db_session, parcel.id, "picked_up", courier.id)
    assert exc_info.value.status_code == 503
    assert exc_info.value.details == {"dependency": "database"}
