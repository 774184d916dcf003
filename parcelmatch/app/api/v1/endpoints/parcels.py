"""
Parcel API Endpoints.

Senders publish parcels; couriers of the matched trip (or admins) move them
through delivery.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from parcelmatch.app.db.session import get_db
from parcelmatch.app.core.dependencies import get_current_user
from parcelmatch.app.core.exceptions import DependencyUnavailableError, RateLimitExceededError
from parcelmatch.app.core.config import settings
from parcelmatch.app.core.guards import require_role, ownership_guard
from parcelmatch.app.domain.matching.generator import generate_for_parcel
from parcelmatch.app.domain.status.lookups import get_or_404
from parcelmatch.app.domain.status.parcel_status import transition_parcel_status
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.parcel_status_history import ParcelStatusHistory
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.models.user import User
from parcelmatch.app.schemas.match import MatchResponse
from parcelmatch.app.schemas.parcel import (
    ParcelCreate,
    ParcelCreatedResponse,
    ParcelResponse,
    ParcelStatusHistoryResponse,
    ParcelStatusUpdate,
)
from parcelmatch.app.services.audit import log_event, AuditAction
from parcelmatch.app.services.rate_limit import EntityKind, check_create_rate_limit

logger = logging.getLogger("parcelmatch.api")

router = APIRouter(prefix="/parcels", tags=["Parcels"])


async def _load_visible_parcel(db: AsyncSession, parcel_id: int, current_user: User) -> Parcel:
    """Parcel visible to its sender, the courier carrying it, or an admin."""
    parcel = await get_or_404(db, Parcel, parcel_id, "Parcel")

    courier_id = None
    if parcel.matched_trip_id is not None:
        trip = await get_or_404(db, Trip, parcel.matched_trip_id, "Trip")
        courier_id = trip.courier_id

    ownership_guard.enforce([parcel.sender_id, courier_id], current_user, "parcel")
    return parcel


@router.post("", response_model=ParcelCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    current_user: User = Depends(require_role([UserRole.SENDER])),
    db: AsyncSession = Depends(get_db)
):
    """
    Publish a parcel and generate its candidate matches.

    Validates:
    - Sender has not exceeded the creation rate limit
    - Coordinates come in complete, in-range pairs
    """
    limit = await check_create_rate_limit(db, current_user.id, EntityKind.PARCELS)
    if not limit.allowed:
        raise RateLimitExceededError(
            EntityKind.PARCELS.value,
            limit.count,
            settings.rate_limit_max_creations,
            settings.rate_limit_window_minutes
        )

    new_parcel = Parcel(
        sender_id=current_user.id,
        status=ParcelStatus.PENDING,
        **parcel_data.model_dump()
    )
    db.add(new_parcel)
    await db.flush()

    db.add(ParcelStatusHistory(
        parcel_id=new_parcel.id,
        status=ParcelStatus.PENDING,
        notes="Parcel created",
        actor_id=current_user.id
    ))
    await log_event(
        db,
        action=AuditAction.PARCEL_CREATED,
        actor_id=current_user.id,
        entity_type="parcel",
        entity_id=new_parcel.id,
        metadata={"weight_kg": new_parcel.weight_kg},
        commit=False
    )
    await db.commit()
    await db.refresh(new_parcel)

    parcel_out = ParcelResponse.model_validate(new_parcel)

    # The parcel is stored either way; a failed generation run leaves it
    # pending and is reported instead of undoing the creation.
    try:
        match_ids = await generate_for_parcel(db, parcel_out.id)
        matching_available = True
    except DependencyUnavailableError as exc:
        logger.error("Match generation for parcel %s failed: %s", parcel_out.id, exc.message)
        match_ids, matching_available = [], False

    return ParcelCreatedResponse(parcel=parcel_out, match_ids=match_ids, matching_available=matching_available)


@router.get("/{parcel_id}", response_model=ParcelResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get parcel details (sender, carrying courier or admin)."""
    parcel = await _load_visible_parcel(db, parcel_id, current_user)
    return ParcelResponse.model_validate(parcel)


@router.get("/{parcel_id}/matches", response_model=List[MatchResponse])
async def list_parcel_matches(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List candidate matches for a parcel, best score first."""
    await _load_visible_parcel(db, parcel_id, current_user)

    result = await db.execute(
        select(Match)
        .where(Match.parcel_id == parcel_id)
        .order_by(Match.match_score.desc(), Match.id)
    )
    return [MatchResponse.model_validate(m) for m in result.scalars().all()]


@router.get("/{parcel_id}/history", response_model=List[ParcelStatusHistoryResponse])
async def get_parcel_history(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Status timeline of a parcel, oldest first."""
    await _load_visible_parcel(db, parcel_id, current_user)

    result = await db.execute(
        select(ParcelStatusHistory)
        .where(ParcelStatusHistory.parcel_id == parcel_id)
        .order_by(ParcelStatusHistory.id)
    )
    return [ParcelStatusHistoryResponse.model_validate(h) for h in result.scalars().all()]


@router.post("/{parcel_id}/status", response_model=ParcelResponse)
async def update_parcel_status(
    update_data: ParcelStatusUpdate,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Move a parcel to its next delivery status.

    Allowed for the courier of the matched trip or an admin.
    """
    await transition_parcel_status(
        db,
        parcel_id,
        update_data.status,
        current_user.id,
        notes=update_data.notes,
        location=update_data.location
    )
    parcel = await get_or_404(db, Parcel, parcel_id, "Parcel")
    await db.refresh(parcel)
    return ParcelResponse.model_validate(parcel)
