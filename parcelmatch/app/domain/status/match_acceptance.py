"""
Courier decisions on pending matches.

Accepting a match is the only way a parcel becomes MATCHED. The parcel row
is the serialization point: it moves PENDING -> MATCHED with a conditional
UPDATE, so when two matches for the same parcel are accepted concurrently
exactly one wins and the other gets ParcelAlreadyMatchedError.
"""

import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from parcelmatch.app.core.config import settings
from parcelmatch.app.core.exceptions import (
    ConflictError,
    DependencyUnavailableError,
    InsufficientPermissionsError,
    ParcelAlreadyMatchedError,
    ValidationError,
)
from parcelmatch.app.core.reliability import CircuitBreaker, CircuitOpenError, pricing_circuit_breaker
from parcelmatch.app.db.session import utc_now
from parcelmatch.app.domain.pricing.fee_estimator import FeeBreakdown, quote_parcel_fee
from parcelmatch.app.domain.status.lookups import commit_or_unavailable, get_or_404, is_admin, load_actor
from parcelmatch.app.domain.status.state_machine import validate_match_transition
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.match_enums import MatchStatus, PaymentStatus
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.parcel_status_history import ParcelStatusHistory
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.services.audit import AuditAction, log_event
from parcelmatch.app.services.notification_service import NotificationService

logger = logging.getLogger("parcelmatch.status")

FeeQuoter = Callable[[Parcel], Awaitable[FeeBreakdown]]


async def _load_decision_context(db: AsyncSession, match_id: int, actor_id: int):
    """Load match, trip and parcel and check the actor may decide on the match."""
    match = await get_or_404(db, Match, match_id, "Match")
    trip = await get_or_404(db, Trip, match.trip_id, "Trip")
    actor = await load_actor(db, actor_id)

    if not is_admin(actor) and trip.courier_id != actor.id:
        raise InsufficientPermissionsError(
            "Only the trip's courier or an admin can decide on this match",
            details={"match_id": match_id}
        )

    parcel = await get_or_404(db, Parcel, match.parcel_id, "Parcel")
    return match, trip, parcel, actor


async def _quote_fee(parcel: Parcel, fee_quoter: FeeQuoter, breaker: CircuitBreaker) -> FeeBreakdown:
    try:
        return await breaker.call(fee_quoter, parcel)
    except CircuitOpenError:
        logger.warning("Fee quote for parcel %s skipped: circuit open", parcel.id)
        raise DependencyUnavailableError("pricing", "Fee service is temporarily unavailable")
    except Exception as exc:
        logger.error("Fee quote for parcel %s failed: %s", parcel.id, exc)
        raise DependencyUnavailableError("pricing", "Fee service is temporarily unavailable")


async def accept_match(
    db: AsyncSession,
    match_id: int,
    actor_id: int,
    fee_quoter: Optional[FeeQuoter] = None,
    breaker: Optional[CircuitBreaker] = None,
    min_accept_score: Optional[float] = None
) -> Match:
    """
    Accept a pending match on behalf of the trip's courier.

    Steps:
    1. Actor must be the trip's courier or an admin
    2. Parcel must still be pending, else ParcelAlreadyMatchedError
    3. Match must be pending, else InvalidTransitionError
    4. Quote fees through the circuit breaker; nothing is written on failure
    5. Conditional parcel update PENDING -> MATCHED (the race is decided here)
    6. Match -> ACCEPTED with fees, other pending matches for the parcel -> REJECTED
    7. History row, sender notification and audit entry, one commit

    Returns:
        The accepted match
    """
    fee_quoter = fee_quoter or quote_parcel_fee
    breaker = breaker or pricing_circuit_breaker
    floor = settings.match_min_accept_score if min_accept_score is None else min_accept_score

    match, trip, parcel, actor = await _load_decision_context(db, match_id, actor_id)

    if parcel.status != ParcelStatus.PENDING:
        raise ParcelAlreadyMatchedError(parcel.id, parcel.status.value)
    validate_match_transition(match.status, MatchStatus.ACCEPTED)

    if match.match_score <= floor:
        raise ValidationError("match_score", f"Match score {match.match_score} is below the acceptance minimum {floor}")

    fees = await _quote_fee(parcel, fee_quoter, breaker)

    parcel_id = parcel.id
    result = await db.execute(
        update(Parcel)
        .where(Parcel.id == parcel_id, Parcel.status == ParcelStatus.PENDING)
        .values(status=ParcelStatus.MATCHED, matched_trip_id=trip.id, updated_at=utc_now())
    )
    if result.rowcount != 1:
        await db.rollback()
        logger.info("Parcel %s was matched concurrently; match %s not accepted", parcel_id, match_id)
        raise ParcelAlreadyMatchedError(parcel_id, ParcelStatus.MATCHED.value)

    accepted_at = utc_now()
    result = await db.execute(
        update(Match)
        .where(Match.id == match_id, Match.status == MatchStatus.PENDING)
        .values(
            status=MatchStatus.ACCEPTED,
            delivery_fee=fees.delivery_fee,
            platform_fee=fees.platform_fee,
            total_amount=fees.total_amount,
            currency=fees.currency,
            payment_status=PaymentStatus.UNPAID,
            accepted_at=accepted_at
        )
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ConflictError(f"Match {match_id} was decided concurrently", details={"match_id": match_id})

    await db.execute(
        update(Match)
        .where(
            Match.parcel_id == parcel_id,
            Match.id != match_id,
            Match.status == MatchStatus.PENDING
        )
        .values(status=MatchStatus.REJECTED)
    )

    db.add(ParcelStatusHistory(
        parcel_id=parcel_id,
        status=ParcelStatus.MATCHED,
        notes=f"Accepted on trip #{trip.id}",
        actor_id=actor.id
    ))
    await NotificationService.notify_sender_of_acceptance(
        db,
        sender_id=parcel.sender_id,
        match_id=match_id,
        parcel_id=parcel_id,
        trip_id=trip.id,
        total_amount=fees.total_amount,
        currency=fees.currency
    )
    await log_event(
        db,
        action=AuditAction.MATCH_ACCEPTED,
        actor_id=actor.id,
        entity_type="match",
        entity_id=match_id,
        metadata={"parcel_id": parcel_id, "trip_id": trip.id, **fees.model_dump()},
        commit=False
    )
    await commit_or_unavailable(db, f"acceptance of match {match_id}")

    await db.refresh(match)
    logger.info("Match %s accepted by user %s (parcel %s -> trip %s)", match_id, actor.id, parcel_id, trip.id)
    return match


async def reject_match(db: AsyncSession, match_id: int, actor_id: int) -> Match:
    """
    Reject a pending match. The parcel stays pending and open to other trips.
    """
    match, trip, parcel, actor = await _load_decision_context(db, match_id, actor_id)
    validate_match_transition(match.status, MatchStatus.REJECTED)

    result = await db.execute(
        update(Match)
        .where(Match.id == match_id, Match.status == MatchStatus.PENDING)
        .values(status=MatchStatus.REJECTED)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ConflictError(f"Match {match_id} was decided concurrently", details={"match_id": match_id})

    await log_event(
        db,
        action=AuditAction.MATCH_REJECTED,
        actor_id=actor.id,
        entity_type="match",
        entity_id=match_id,
        metadata={"parcel_id": parcel.id, "trip_id": trip.id},
        commit=False
    )
    await commit_or_unavailable(db, f"rejection of match {match_id}")

    await db.refresh(match)
    logger.info("Match %s rejected by user %s", match_id, actor.id)
    return match
