"""
Parcel and trip status changes requested by couriers and admins.

Every change is a compare-and-set on the status that was read
(UPDATE ... WHERE status = <current>), so two concurrent requests cannot
both move the same row; the loser gets a ConflictError.
"""

import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from parcelmatch.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
)
from parcelmatch.app.db.session import utc_now
from parcelmatch.app.domain.status.lookups import commit_or_unavailable, get_or_404, is_admin, load_actor
from parcelmatch.app.domain.status.state_machine import (
    parse_status,
    validate_parcel_transition,
    validate_trip_transition,
)
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.match_enums import MatchStatus
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.parcel_status_history import ParcelStatusHistory
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.models.trip_enums import TripStatus
from parcelmatch.app.services.audit import AuditAction, log_event
from parcelmatch.app.services.notification_service import NotificationService

logger = logging.getLogger("parcelmatch.status")


async def transition_parcel_status(
    db: AsyncSession,
    parcel_id: int,
    requested,
    actor_id: int,
    notes: Optional[str] = None,
    location: Optional[str] = None
) -> ParcelStatus:
    """
    Move a matched parcel along its delivery lifecycle.

    Only an admin or the courier of the trip the parcel is currently matched
    to may do this; the courier is looked up now, not taken from the caller.

    Returns:
        The new parcel status

    Raises:
        ValidationError: requested is not a parcel status
        ResourceNotFoundError: unknown parcel
        InsufficientPermissionsError: actor may not change this parcel
        InvalidTransitionError: requested is not reachable from the current status
        ConflictError: the status changed between the read and the write
    """
    requested = parse_status(ParcelStatus, requested)

    parcel = await get_or_404(db, Parcel, parcel_id, "Parcel")
    actor = await load_actor(db, actor_id)

    if not is_admin(actor):
        courier_id = None
        if parcel.matched_trip_id is not None:
            trip = await get_or_404(db, Trip, parcel.matched_trip_id, "Trip")
            courier_id = trip.courier_id
        if courier_id != actor.id:
            raise InsufficientPermissionsError(
                "Only the assigned courier or an admin can update this parcel",
                details={"parcel_id": parcel_id}
            )

    current = parcel.status
    validate_parcel_transition(current, requested)

    result = await db.execute(
        update(Parcel)
        .where(Parcel.id == parcel_id, Parcel.status == current)
        .values(status=requested, updated_at=utc_now())
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ConflictError(
            f"Parcel {parcel_id} status changed concurrently",
            details={"parcel_id": parcel_id, "expected": current.value}
        )

    db.add(ParcelStatusHistory(
        parcel_id=parcel_id,
        status=requested,
        notes=notes,
        location=location,
        actor_id=actor.id
    ))
    await NotificationService.notify_sender_of_status(db, parcel.sender_id, parcel_id, requested.value)
    await log_event(
        db,
        action=AuditAction.PARCEL_STATUS_CHANGED,
        actor_id=actor.id,
        entity_type="parcel",
        entity_id=parcel_id,
        metadata={"from": current.value, "to": requested.value, "notes": notes},
        commit=False
    )
    await commit_or_unavailable(db, f"parcel {parcel_id} status change")

    logger.info("Parcel %s: %s -> %s by user %s", parcel_id, current.value, requested.value, actor.id)
    return requested


async def transition_trip_status(
    db: AsyncSession,
    trip_id: int,
    requested,
    actor_id: int
) -> TripStatus:
    """
    Move a trip along its lifecycle (courier of the trip or admin).

    A trip leaving the matchable states (completed or cancelled) rejects
    its remaining pending matches.
    """
    requested = parse_status(TripStatus, requested)

    trip = await get_or_404(db, Trip, trip_id, "Trip")
    actor = await load_actor(db, actor_id)

    if not is_admin(actor) and trip.courier_id != actor.id:
        raise InsufficientPermissionsError(
            "Only the trip's courier or an admin can update this trip",
            details={"trip_id": trip_id}
        )

    current = trip.status
    validate_trip_transition(current, requested)

    result = await db.execute(
        update(Trip)
        .where(Trip.id == trip_id, Trip.status == current)
        .values(status=requested, updated_at=utc_now())
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ConflictError(
            f"Trip {trip_id} status changed concurrently",
            details={"trip_id": trip_id, "expected": current.value}
        )

    if requested in (TripStatus.COMPLETED, TripStatus.CANCELLED):
        await db.execute(
            update(Match)
            .where(Match.trip_id == trip_id, Match.status == MatchStatus.PENDING)
            .values(status=MatchStatus.REJECTED)
        )

    await log_event(
        db,
        action=AuditAction.TRIP_STATUS_CHANGED,
        actor_id=actor.id,
        entity_type="trip",
        entity_id=trip_id,
        metadata={"from": current.value, "to": requested.value},
        commit=False
    )
    await commit_or_unavailable(db, f"trip {trip_id} status change")

    logger.info("Trip %s: %s -> %s by user %s", trip_id, current.value, requested.value, actor.id)
    return requested
