"""
Match acceptance and rejection tests.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from parcelmatch.app.core.exceptions import (
    DependencyUnavailableError,
    InsufficientPermissionsError,
    InvalidTransitionError,
    ParcelAlreadyMatchedError,
    ValidationError,
)
from parcelmatch.app.core.reliability import CircuitBreaker
from parcelmatch.app.domain.matching.generator import generate_for_parcel
from parcelmatch.app.domain.pricing.fee_estimator import FeeBreakdown
from parcelmatch.app.domain.status.match_acceptance import accept_match, reject_match
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.match_enums import MatchStatus, PaymentStatus
from parcelmatch.app.models.notification import Notification, NotificationType
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.parcel_status_history import ParcelStatusHistory
from parcelmatch.app.services.audit import AuditAction, get_audit_trail


@pytest.fixture
async def two_offers(db_session, make_user, make_parcel, make_trip):
    """One pending parcel with pending matches on two couriers' trips."""
    sender = await make_user(UserRole.SENDER)
    first_courier = await make_user(UserRole.COURIER)
    second_courier = await make_user(UserRole.COURIER)
    first_trip = await make_trip(first_courier)
    second_trip = await make_trip(second_courier)
    parcel = await make_parcel(sender)

    await generate_for_parcel(db_session, parcel.id)
    result = await db_session.execute(select(Match).where(Match.parcel_id == parcel.id).order_by(Match.trip_id))
    first_match, second_match = result.scalars().all()
    assert first_match.trip_id == first_trip.id

    return {
        "sender": sender,
        "parcel": parcel,
        "first": (first_match, first_courier),
        "second": (second_match, second_courier),
    }


async def test_accept_matches_parcel_and_records_fees(db_session, two_offers):
    match, courier = two_offers["first"]
    parcel = two_offers["parcel"]

    accepted = await accept_match(db_session, match.id, courier.id)

    assert accepted.status == MatchStatus.ACCEPTED
    assert accepted.payment_status == PaymentStatus.UNPAID
    assert accepted.accepted_at is not None
    assert accepted.delivery_fee > 0
    assert accepted.total_amount == pytest.approx(accepted.delivery_fee + accepted.platform_fee)
    assert accepted.currency == "USD"

    await db_session.refresh(parcel)
    assert parcel.status == ParcelStatus.MATCHED
    assert parcel.matched_trip_id == match.trip_id

    history = await db_session.execute(
        select(ParcelStatusHistory).where(ParcelStatusHistory.parcel_id == parcel.id)
    )
    assert [h.status for h in history.scalars().all()] == [ParcelStatus.MATCHED]

    notes = await db_session.execute(
        select(Notification).where(
            Notification.user_id == two_offers["sender"].id,
            Notification.type == NotificationType.MATCH_ACCEPTED
        )
    )
    assert len(notes.scalars().all()) == 1

    trail = await get_audit_trail(db_session, entity_type="match", entity_id=match.id)
    assert [entry.action for entry in trail] == [AuditAction.MATCH_ACCEPTED, AuditAction.MATCH_CREATED]
    assert trail[0].actor_id == courier.id


async def test_accept_rejects_competing_matches(db_session, two_offers):
    match, courier = two_offers["first"]
    other, _ = two_offers["second"]

    await accept_match(db_session, match.id, courier.id)
    await db_session.refresh(other)

    assert other.status == MatchStatus.REJECTED


async def test_second_acceptance_is_a_conflict(db_session, two_offers):
    match, courier = two_offers["first"]
    other, other_courier = two_offers["second"]
    await accept_match(db_session, match.id, courier.id)

    with pytest.raises(ParcelAlreadyMatchedError):
        await accept_match(db_session, other.id, other_courier.id)
    with pytest.raises(ParcelAlreadyMatchedError):
        await accept_match(db_session, match.id, courier.id)

    # The first acceptance is untouched
    await db_session.refresh(match)
    parcel = two_offers["parcel"]
    await db_session.refresh(parcel)
    assert match.status == MatchStatus.ACCEPTED
    assert parcel.matched_trip_id == match.trip_id


async def test_only_the_trips_courier_may_accept(db_session, two_offers):
    match, _ = two_offers["first"]
    _, other_courier = two_offers["second"]

    with pytest.raises(InsufficientPermissionsError):
        await accept_match(db_session, match.id, other_courier.id)
    with pytest.raises(InsufficientPermissionsError):
        await accept_match(db_session, match.id, two_offers["sender"].id)


async def test_admin_may_accept(db_session, two_offers, make_user):
    match, _ = two_offers["first"]
    admin = await make_user(UserRole.ADMIN)

    accepted = await accept_match(db_session, match.id, admin.id)
    assert accepted.status == MatchStatus.ACCEPTED


async def test_fee_failure_changes_nothing(db_session, two_offers):
    match, courier = two_offers["first"]
    breaker = CircuitBreaker(failure_threshold=5, reset_timeout=60)

    async def broken_quoter(parcel):
        raise ConnectionError("pricing service down")

    with pytest.raises(DependencyUnavailableError) as exc_info:
        await accept_match(db_session, match.id, courier.id, fee_quoter=broken_quoter, breaker=breaker)
    assert exc_info.value.details["dependency"] == "pricing"

    parcel = two_offers["parcel"]
    await db_session.refresh(parcel)
    await db_session.refresh(match)
    assert parcel.status == ParcelStatus.PENDING
    assert match.status == MatchStatus.PENDING
    assert breaker.failures == 1


async def test_open_circuit_skips_the_quote(db_session, two_offers):
    match, courier = two_offers["first"]
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=60)
    breaker.record_failure()
    calls = []

    async def quoter(parcel):
        calls.append(parcel.id)
        return FeeBreakdown(delivery_fee=10, platform_fee=1.5, total_amount=11.5, currency="USD", distance_km=1)

    with pytest.raises(DependencyUnavailableError):
        await accept_match(db_session, match.id, courier.id, fee_quoter=quoter, breaker=breaker)
    assert calls == []


async def test_custom_quoter_amounts_are_stored(db_session, two_offers):
    match, courier = two_offers["first"]

    async def quoter(parcel):
        return FeeBreakdown(delivery_fee=20.0, platform_fee=3.0, total_amount=23.0, currency="EUR", distance_km=262.0)

    accepted = await accept_match(db_session, match.id, courier.id, fee_quoter=quoter)
    assert (accepted.delivery_fee, accepted.platform_fee, accepted.total_amount, accepted.currency) == (20.0, 3.0, 23.0, "EUR")


async def test_acceptance_floor(db_session, two_offers):
    match, courier = two_offers["first"]

    with pytest.raises(ValidationError):
        await accept_match(db_session, match.id, courier.id, min_accept_score=100.0)


async def test_reject_keeps_parcel_pending(db_session, two_offers):
    match, courier = two_offers["first"]

    rejected = await reject_match(db_session, match.id, courier.id)
    assert rejected.status == MatchStatus.REJECTED

    parcel = two_offers["parcel"]
    await db_session.refresh(parcel)
    assert parcel.status == ParcelStatus.PENDING

    with pytest.raises(InvalidTransitionError):
        await accept_match(db_session, match.id, courier.id)

    other, other_courier = two_offers["second"]
    assert (await accept_match(db_session, other.id, other_courier.id)).status == MatchStatus.ACCEPTED


async def test_store_outage_during_acceptance_is_unavailable(db_session, two_offers, mocker):
    match, courier = two_offers["first"]
    match_id, courier_id = match.id, courier.id
    mocker.patch.object(
        db_session,
        "execute",
        side_effect=OperationalError("SELECT", {}, Exception("connection refused"))
    )

    with pytest.raises(DependencyUnavailableError) as exc_info:
        await accept_match(db_session, match_id, courier_id)
    assert exc_info.value.details == {"dependency": "database"}
