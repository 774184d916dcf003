"""
Trip API Endpoints.

Couriers publish trips and see the parcels matched against them.
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
from parcelmatch.app.domain.matching.generator import generate_for_trip
from parcelmatch.app.domain.status.lookups import get_or_404
from parcelmatch.app.domain.status.parcel_status import transition_trip_status
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.models.trip_enums import TripStatus
from parcelmatch.app.models.user import User
from parcelmatch.app.schemas.match import MatchResponse
from parcelmatch.app.schemas.trip import TripCreate, TripCreatedResponse, TripResponse, TripStatusUpdate
from parcelmatch.app.services.audit import log_event, AuditAction
from parcelmatch.app.services.rate_limit import EntityKind, check_create_rate_limit

logger = logging.getLogger("parcelmatch.api")

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("", response_model=TripCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    current_user: User = Depends(require_role([UserRole.COURIER])),
    db: AsyncSession = Depends(get_db)
):
    """Publish a trip and generate its candidate matches (Courier only)."""
    limit = await check_create_rate_limit(db, current_user.id, EntityKind.TRIPS)
    if not limit.allowed:
        raise RateLimitExceededError(
            EntityKind.TRIPS.value,
            limit.count,
            settings.rate_limit_max_creations,
            settings.rate_limit_window_minutes
        )

    new_trip = Trip(
        courier_id=current_user.id,
        status=TripStatus.SCHEDULED,
        **trip_data.model_dump()
    )
    db.add(new_trip)
    await db.flush()

    await log_event(
        db,
        action=AuditAction.TRIP_CREATED,
        actor_id=current_user.id,
        entity_type="trip",
        entity_id=new_trip.id,
        metadata={
            "available_capacity": new_trip.available_capacity.value if new_trip.available_capacity else None
        },
        commit=False
    )
    await db.commit()
    await db.refresh(new_trip)

    trip_out = TripResponse.model_validate(new_trip)

    try:
        match_ids = await generate_for_trip(db, trip_out.id)
        matching_available = True
    except DependencyUnavailableError as exc:
        logger.error("Match generation for trip %s failed: %s", trip_out.id, exc.message)
        match_ids, matching_available = [], False

    return TripCreatedResponse(trip=trip_out, match_ids=match_ids, matching_available=matching_available)


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get trip details (its courier or admin)."""
    trip = await get_or_404(db, Trip, trip_id, "Trip")
    ownership_guard.enforce([trip.courier_id], current_user, "trip")
    return TripResponse.model_validate(trip)


@router.get("/{trip_id}/matches", response_model=List[MatchResponse])
async def list_trip_matches(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List candidate parcels for a trip, best score first."""
    trip = await get_or_404(db, Trip, trip_id, "Trip")
    ownership_guard.enforce([trip.courier_id], current_user, "trip")

    result = await db.execute(
        select(Match)
        .where(Match.trip_id == trip_id)
        .order_by(Match.match_score.desc(), Match.id)
    )
    return [MatchResponse.model_validate(m) for m in result.scalars().all()]


@router.post("/{trip_id}/status", response_model=TripResponse)
async def update_trip_status(
    update_data: TripStatusUpdate,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Start, complete or cancel a trip (its courier or admin)."""
    await transition_trip_status(db, trip_id, update_data.status, current_user.id)
    trip = await get_or_404(db, Trip, trip_id, "Trip")
    await db.refresh(trip)
    return TripResponse.model_validate(trip)
