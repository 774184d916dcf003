"""
Match API Endpoints.

Courier decisions on candidate matches and score previews.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from parcelmatch.app.db.session import get_db
from parcelmatch.app.core.dependencies import get_current_user
from parcelmatch.app.core.guards import require_role, ownership_guard
from parcelmatch.app.domain.matching.generator import score_pair
from parcelmatch.app.domain.status.lookups import get_or_404
from parcelmatch.app.domain.status.match_acceptance import accept_match, reject_match
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.models.user import User
from parcelmatch.app.schemas.match import MatchResponse, ScorePreviewResponse

router = APIRouter(prefix="/matches", tags=["Matches"])
scoring_router = APIRouter(prefix="/matching", tags=["Matching"])


@router.post("/{match_id}/accept", response_model=MatchResponse)
async def accept(
    match_id: int = Path(..., description="Match ID"),
    current_user: User = Depends(require_role([UserRole.COURIER])),
    db: AsyncSession = Depends(get_db)
):
    """
    Accept a candidate match (trip's courier or admin).

    Returns 409 if the parcel has already been matched.
    """
    match = await accept_match(db, match_id, current_user.id)
    return MatchResponse.model_validate(match)


@router.post("/{match_id}/reject", response_model=MatchResponse)
async def reject(
    match_id: int = Path(..., description="Match ID"),
    current_user: User = Depends(require_role([UserRole.COURIER])),
    db: AsyncSession = Depends(get_db)
):
    """Reject a candidate match; the parcel stays open for other trips."""
    match = await reject_match(db, match_id, current_user.id)
    return MatchResponse.model_validate(match)


@scoring_router.get("/score", response_model=ScorePreviewResponse)
async def preview_score(
    parcel_id: int = Query(..., gt=0),
    trip_id: int = Query(..., gt=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Score a parcel/trip pair without creating a match."""
    parcel = await get_or_404(db, Parcel, parcel_id, "Parcel")
    trip = await get_or_404(db, Trip, trip_id, "Trip")
    ownership_guard.enforce([parcel.sender_id, trip.courier_id], current_user, "parcel or trip")

    result = await score_pair(db, parcel_id, trip_id)
    return ScorePreviewResponse(parcel_id=parcel_id, trip_id=trip_id, **result.model_dump())
