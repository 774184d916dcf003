"""
Match generation tests.
"""

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from parcelmatch.app.core.exceptions import DependencyUnavailableError, ResourceNotFoundError
from parcelmatch.app.domain.matching import generator
from parcelmatch.app.domain.matching.generator import generate_for_parcel, generate_for_trip, score_pair
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.match_enums import MatchStatus
from parcelmatch.app.models.notification import Notification, NotificationType
from parcelmatch.app.models.parcel_enums import CapacityClass, ParcelStatus
from parcelmatch.app.models.trip_enums import TripStatus


async def _match_count(db_session, **filters) -> int:
    query = select(func.count(Match.id))
    for column, value in filters.items():
        query = query.where(getattr(Match, column) == value)
    result = await db_session.execute(query)
    return result.scalar()


async def test_parcel_generation_matches_open_trips(db_session, make_user, make_parcel, make_trip):
    sender = await make_user(UserRole.SENDER)
    courier = await make_user(UserRole.COURIER)

    good_trip = await make_trip(courier)
    moving_trip = await make_trip(courier, status=TripStatus.IN_PROGRESS)
    await make_trip(courier, status=TripStatus.CANCELLED)
    await make_trip(courier, status=TripStatus.COMPLETED)
    await make_trip(courier, available_capacity=CapacityClass.SMALL)  # too small, score 0
    parcel = await make_parcel(sender)

    created = await generate_for_parcel(db_session, parcel.id)

    assert len(created) == 2
    result = await db_session.execute(select(Match).where(Match.id.in_(created)))
    matches = result.scalars().all()
    assert {m.trip_id for m in matches} == {good_trip.id, moving_trip.id}
    assert all(m.status == MatchStatus.PENDING for m in matches)
    assert all(0 < m.match_score <= 100 for m in matches)


async def test_generation_never_matches_senders_own_trip(db_session, make_user, make_parcel, make_trip):
    sender = await make_user(UserRole.SENDER)
    await make_trip(sender)
    parcel = await make_parcel(sender)

    assert await generate_for_parcel(db_session, parcel.id) == []


async def test_generation_is_idempotent(db_session, make_user, make_parcel, make_trip):
    sender = await make_user(UserRole.SENDER)
    courier = await make_user(UserRole.COURIER)
    trip = await make_trip(courier)
    parcel = await make_parcel(sender)

    first = await generate_for_parcel(db_session, parcel.id)
    second = await generate_for_parcel(db_session, parcel.id)
    from_trip = await generate_for_trip(db_session, trip.id)

    assert len(first) == 1
    assert second == []
    assert from_trip == []
    assert await _match_count(db_session, parcel_id=parcel.id, trip_id=trip.id) == 1


async def test_duplicate_insert_is_swallowed(db_session, make_user, make_parcel, make_trip, monkeypatch):
    """With the pre-check blinded, the unique constraint still keeps one row."""
    sender = await make_user(UserRole.SENDER)
    courier = await make_user(UserRole.COURIER)
    trip = await make_trip(courier)
    parcel = await make_parcel(sender)
    # the swallowed IntegrityError rolls back the shared session and expires these rows
    parcel_id, trip_id = parcel.id, trip.id

    assert len(await generate_for_parcel(db_session, parcel_id)) == 1

    async def no_existing_pairs(db, parcel_ids, trip_ids):
        return set()

    monkeypatch.setattr(generator, "_open_pairs", no_existing_pairs)

    assert await generate_for_parcel(db_session, parcel_id) == []
    assert await _match_count(db_session, parcel_id=parcel_id, trip_id=trip_id) == 1


async def test_trip_generation_matches_pending_parcels(db_session, make_user, make_parcel, make_trip):
    sender = await make_user(UserRole.SENDER)
    courier = await make_user(UserRole.COURIER)
    pending = await make_parcel(sender)
    await make_parcel(sender, status=ParcelStatus.DELIVERED)
    await make_parcel(courier)  # courier's own parcel
    trip = await make_trip(courier)

    created = await generate_for_trip(db_session, trip.id)

    assert len(created) == 1
    match = await db_session.get(Match, created[0])
    assert match.parcel_id == pending.id


async def test_generation_notifies_courier(db_session, make_user, make_parcel, make_trip):
    sender = await make_user(UserRole.SENDER)
    courier = await make_user(UserRole.COURIER)
    await make_trip(courier)
    parcel = await make_parcel(sender)

    created = await generate_for_parcel(db_session, parcel.id)

    result = await db_session.execute(select(Notification).where(Notification.user_id == courier.id))
    notifications = result.scalars().all()
    assert len(notifications) == 1
    assert notifications[0].type == NotificationType.MATCH_FOUND
    assert notifications[0].metadata_payload["match_id"] == created[0]


async def test_generation_does_not_change_statuses(db_session, make_user, make_parcel, make_trip):
    sender = await make_user(UserRole.SENDER)
    courier = await make_user(UserRole.COURIER)
    trip = await make_trip(courier)
    parcel = await make_parcel(sender)

    await generate_for_parcel(db_session, parcel.id)
    await db_session.refresh(parcel)
    await db_session.refresh(trip)

    assert parcel.status == ParcelStatus.PENDING
    assert parcel.matched_trip_id is None
    assert trip.status == TripStatus.SCHEDULED


async def test_non_pending_parcel_generates_nothing(db_session, make_user, make_parcel, make_trip):
    sender = await make_user(UserRole.SENDER)
    courier = await make_user(UserRole.COURIER)
    await make_trip(courier)
    parcel = await make_parcel(sender, status=ParcelStatus.CANCELLED)

    assert await generate_for_parcel(db_session, parcel.id) == []


async def test_persist_floor_is_strictly_greater(db_session, make_user, make_parcel, make_trip):
    sender = await make_user(UserRole.SENDER)
    courier = await make_user(UserRole.COURIER)
    trip = await make_trip(courier)
    parcel = await make_parcel(sender)

    preview = await score_pair(db_session, parcel.id, trip.id)

    assert await generate_for_parcel(db_session, parcel.id, min_persist_score=preview.score) == []
    assert len(await generate_for_parcel(db_session, parcel.id, min_persist_score=preview.score - 1)) == 1


async def test_unknown_parcel_raises_not_found(db_session):
    with pytest.raises(ResourceNotFoundError):
        await generate_for_parcel(db_session, 9999)


async def test_store_failure_fails_closed(db_session, make_user, make_parcel, mocker):
    sender = await make_user(UserRole.SENDER)
    parcel = await make_parcel(sender)

    mocker.patch.object(
        db_session,
        "execute",
        side_effect=OperationalError("SELECT", {}, Exception("database is down"))
    )

    with pytest.raises(DependencyUnavailableError):
        await generate_for_parcel(db_session, parcel.id)
