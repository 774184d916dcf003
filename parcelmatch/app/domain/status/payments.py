"""
Payment gateway event consumer.

payment_status only moves on gateway events: unpaid -> paid once the
accepted match's total has been captured, paid -> refunded afterwards.
Gateways deliver at least once, so a replayed event is reported as a
benign conflict instead of being applied twice.
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parcelmatch.app.core.exceptions import ConflictError, ResourceNotFoundError, ValidationError
from parcelmatch.app.db.session import utc_now
from parcelmatch.app.domain.status.lookups import commit_or_unavailable, get_or_404
from parcelmatch.app.domain.status.state_machine import validate_payment_transition
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.match_enums import MatchStatus, PaymentStatus
from parcelmatch.app.models.notification import NotificationType
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.services.audit import AuditAction, log_event
from parcelmatch.app.services.notification_service import NotificationService

logger = logging.getLogger("parcelmatch.payments")

EVENT_PAID = "paid"
EVENT_REFUNDED = "refunded"


class PaymentEvent(BaseModel):
    """A normalized event from the payment gateway feed."""
    event_type: str = Field(..., min_length=1, max_length=64)
    match_id: Optional[int] = Field(None, gt=0)
    payment_intent_id: Optional[str] = Field(None, min_length=1, max_length=255)


async def _match_by_intent(db: AsyncSession, payment_intent_id: str) -> Match:
    result = await db.execute(select(Match).where(Match.payment_intent_id == payment_intent_id))
    match = result.scalar_one_or_none()
    if match is None:
        raise ResourceNotFoundError("Match", payment_intent_id)
    return match


async def _resolve_match(db: AsyncSession, event: PaymentEvent) -> Match:
    """Find the event's match by match_id, else by payment reference."""
    if event.match_id is not None:
        match = await get_or_404(db, Match, event.match_id, "Match")
        if event.payment_intent_id and match.payment_intent_id and match.payment_intent_id != event.payment_intent_id:
            raise ValidationError("payment_intent_id", "Payment reference does not belong to this match")
        return match
    if event.payment_intent_id:
        return await _match_by_intent(db, event.payment_intent_id)
    raise ValidationError("match_id", f"A {event.event_type} event needs a match_id or a payment_intent_id")


def _reject_replay(match: Match, requested: PaymentStatus) -> None:
    if match.payment_status == requested:
        raise ConflictError(
            f"Match {match.id} is already {requested.value}",
            details={"match_id": match.id, "payment_status": requested.value}
        )


async def _apply_paid(db: AsyncSession, event: PaymentEvent) -> Match:
    match = await _resolve_match(db, event)
    _reject_replay(match, PaymentStatus.PAID)

    if match.status != MatchStatus.ACCEPTED:
        raise ConflictError(
            f"Match {match.id} is {match.status.value}; only accepted matches can be paid",
            details={"match_id": match.id, "status": match.status.value}
        )
    if not match.total_amount or match.total_amount <= 0:
        raise ValidationError("total_amount", f"Match {match.id} has no amount to pay")
    validate_payment_transition(match.payment_status, PaymentStatus.PAID)

    values = {"payment_status": PaymentStatus.PAID, "paid_at": utc_now()}
    if event.payment_intent_id:
        values["payment_intent_id"] = event.payment_intent_id

    match_id = match.id
    try:
        result = await db.execute(
            update(Match)
            .where(Match.id == match_id, Match.payment_status == PaymentStatus.UNPAID)
            .values(**values)
        )
    except IntegrityError:
        await db.rollback()
        raise ConflictError(
            "Payment reference is already attached to another match",
            details={"match_id": match_id, "payment_intent_id": event.payment_intent_id}
        )
    if result.rowcount != 1:
        await db.rollback()
        raise ConflictError(f"Payment for match {match_id} was recorded concurrently", details={"match_id": match_id})

    parcel = await get_or_404(db, Parcel, match.parcel_id, "Parcel")
    await NotificationService.create_notification(
        db,
        user_id=parcel.sender_id,
        title="Payment received",
        message=f"Payment of {match.total_amount:.2f} {match.currency} for parcel #{parcel.id} was received.",
        type=NotificationType.PAYMENT_UPDATE,
        metadata={"match_id": match_id, "parcel_id": parcel.id, "payment_status": PaymentStatus.PAID.value}
    )
    await log_event(
        db,
        action=AuditAction.PAYMENT_CONFIRMED,
        entity_type="match",
        entity_id=match_id,
        metadata={"payment_intent_id": event.payment_intent_id, "total_amount": match.total_amount},
        commit=False
    )
    return match


async def _apply_refunded(db: AsyncSession, event: PaymentEvent) -> Match:
    match = await _resolve_match(db, event)
    _reject_replay(match, PaymentStatus.REFUNDED)
    validate_payment_transition(match.payment_status, PaymentStatus.REFUNDED)

    match_id = match.id
    result = await db.execute(
        update(Match)
        .where(Match.id == match_id, Match.payment_status == PaymentStatus.PAID)
        .values(payment_status=PaymentStatus.REFUNDED, refunded_at=utc_now())
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ConflictError(f"Refund for match {match_id} was recorded concurrently", details={"match_id": match_id})

    await log_event(
        db,
        action=AuditAction.PAYMENT_REFUNDED,
        entity_type="match",
        entity_id=match_id,
        metadata={"payment_intent_id": event.payment_intent_id or match.payment_intent_id},
        commit=False
    )
    return match


async def apply_payment_event(db: AsyncSession, event: PaymentEvent) -> Optional[Match]:
    """
    Apply one gateway event to its match.

    Returns:
        The updated match, or None for event types this service ignores

    Raises:
        ValidationError: the event lacks the reference it needs
        ResourceNotFoundError: no match for the given reference
        ConflictError: replayed event, or the match is not in a payable state
        InvalidTransitionError: e.g. a refund for an unpaid match
    """
    event_type = event.event_type.lower()
    if event_type == EVENT_PAID:
        match = await _apply_paid(db, event)
    elif event_type == EVENT_REFUNDED:
        match = await _apply_refunded(db, event)
    else:
        logger.debug("Ignoring payment event type %s", event.event_type)
        return None

    match_id = match.id
    await commit_or_unavailable(db, f"payment event {event_type} for match {match_id}")

    await db.refresh(match)
    logger.info("Match %s payment status -> %s", match_id, match.payment_status.value)
    return match
