"""
Match generation.

Runs after a parcel or trip is created: scores the new entity against every
open candidate on the other side and stores a pending Match for each pair
scoring above the persistence floor.

Concurrent runs (a parcel and a trip created at nearly the same time) may
both decide to insert the same pair. The pre-check narrows that window and
the (parcel_id, trip_id) unique constraint closes it; the loser's
IntegrityError means "already exists" and is skipped.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parcelmatch.app.core.config import settings
from parcelmatch.app.core.exceptions import (
    DependencyUnavailableError,
    ValidationError,
)
from parcelmatch.app.domain.matching.config import MatchingConfig
from parcelmatch.app.domain.matching.scoring import (
    MatchScore,
    score_match,
    validate_parcel_fields,
    validate_trip_fields,
)
from parcelmatch.app.domain.status.lookups import get_or_404
from parcelmatch.app.models.match import Match
from parcelmatch.app.models.match_enums import MatchStatus, OPEN_MATCH_STATUSES
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.models.trip_enums import MATCHABLE_TRIP_STATUSES
from parcelmatch.app.services.audit import AuditAction, log_event
from parcelmatch.app.services.notification_service import NotificationService

logger = logging.getLogger("parcelmatch.matching")


@dataclass(frozen=True)
class _Candidate:
    """Plain-value snapshot of a scored pair, safe to use after a rollback."""
    parcel_id: int
    trip_id: int
    courier_id: int
    score: float


async def _open_pairs(
    db: AsyncSession,
    parcel_ids: Iterable[int],
    trip_ids: Iterable[int]
) -> Set[Tuple[int, int]]:
    """(parcel_id, trip_id) pairs that already have a pending or accepted match."""
    parcel_ids, trip_ids = list(parcel_ids), list(trip_ids)
    if not parcel_ids or not trip_ids:
        return set()

    result = await db.execute(
        select(Match.parcel_id, Match.trip_id).where(
            Match.parcel_id.in_(parcel_ids),
            Match.trip_id.in_(trip_ids),
            Match.status.in_(OPEN_MATCH_STATUSES)
        )
    )
    return {(row.parcel_id, row.trip_id) for row in result.all()}


def _resolve_config(config: Optional[MatchingConfig]) -> MatchingConfig:
    return config or MatchingConfig.from_settings()


def _score_candidate(parcel: Parcel, trip: Trip, config: MatchingConfig) -> Optional[MatchScore]:
    """Score one pair; a malformed candidate row is logged and skipped."""
    try:
        return score_match(parcel, trip, config)
    except ValidationError as exc:
        logger.warning(
            "Skipping parcel %s / trip %s: invalid %s (%s)",
            parcel.id, trip.id, exc.field, exc.message
        )
        return None


async def _persist_candidates(
    db: AsyncSession,
    candidates: List[_Candidate],
    min_persist_score: float
) -> List[int]:
    """
    Insert a pending match per candidate above the floor.

    Each insert, with its courier notification and audit entry, is committed
    on its own so one duplicate does not discard the others.
    """
    try:
        existing = await _open_pairs(
            db,
            {c.parcel_id for c in candidates},
            {c.trip_id for c in candidates}
        )
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Failed to read existing matches: %s", exc)
        raise DependencyUnavailableError("database")

    created: List[int] = []
    for candidate in candidates:
        if candidate.score <= min_persist_score:
            continue
        if (candidate.parcel_id, candidate.trip_id) in existing:
            logger.debug("Match for parcel %s / trip %s already exists", candidate.parcel_id, candidate.trip_id)
            continue

        match = Match(
            parcel_id=candidate.parcel_id,
            trip_id=candidate.trip_id,
            match_score=candidate.score,
            status=MatchStatus.PENDING
        )
        db.add(match)

        try:
            await db.flush()
            match_id = match.id
            await NotificationService.notify_courier_of_match(
                db,
                courier_id=candidate.courier_id,
                match_id=match_id,
                parcel_id=candidate.parcel_id,
                trip_id=candidate.trip_id,
                score=candidate.score
            )
            await log_event(
                db,
                action=AuditAction.MATCH_CREATED,
                entity_type="match",
                entity_id=match_id,
                metadata={
                    "parcel_id": candidate.parcel_id,
                    "trip_id": candidate.trip_id,
                    "score": candidate.score
                },
                commit=False
            )
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info(
                "Match for parcel %s / trip %s was created concurrently; skipping",
                candidate.parcel_id, candidate.trip_id
            )
            continue
        except (SQLAlchemyError, OSError) as exc:
            await db.rollback()
            logger.error("Failed to store match for parcel %s / trip %s: %s", candidate.parcel_id, candidate.trip_id, exc)
            raise DependencyUnavailableError("database")

        created.append(match_id)

    return created


async def generate_for_parcel(
    db: AsyncSession,
    parcel_id: int,
    config: Optional[MatchingConfig] = None,
    min_persist_score: Optional[float] = None
) -> List[int]:
    """
    Create pending matches between a pending parcel and open trips.

    Trips belonging to the parcel's own sender are never candidates.

    Returns:
        IDs of the matches created by this run (possibly empty)

    Raises:
        ResourceNotFoundError: unknown parcel
        ValidationError: parcel coordinates or weight are malformed
        DependencyUnavailableError: the store could not be read or written
    """
    config = _resolve_config(config)
    floor = settings.match_min_persist_score if min_persist_score is None else min_persist_score

    parcel = await get_or_404(db, Parcel, parcel_id, "Parcel")
    validate_parcel_fields(parcel)

    if parcel.status != ParcelStatus.PENDING:
        logger.debug("Parcel %s is %s; no matches generated", parcel_id, parcel.status.value)
        return []

    try:
        result = await db.execute(
            select(Trip).where(
                Trip.status.in_(MATCHABLE_TRIP_STATUSES),
                Trip.courier_id != parcel.sender_id
            ).order_by(Trip.id)
        )
        trips = list(result.scalars().all())
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Failed to load candidate trips for parcel %s: %s", parcel_id, exc)
        raise DependencyUnavailableError("database")

    candidates = []
    for trip in trips:
        scored = _score_candidate(parcel, trip, config)
        if scored is not None:
            candidates.append(_Candidate(parcel.id, trip.id, trip.courier_id, scored.score))

    created = await _persist_candidates(db, candidates, floor)
    logger.info(
        "Generated %d matches for parcel %s (%d candidate trips)",
        len(created), parcel_id, len(candidates)
    )
    return created


async def generate_for_trip(
    db: AsyncSession,
    trip_id: int,
    config: Optional[MatchingConfig] = None,
    min_persist_score: Optional[float] = None
) -> List[int]:
    """
    Create pending matches between an open trip and pending parcels.

    Parcels sent by the trip's own courier are never candidates.

    Returns:
        IDs of the matches created by this run (possibly empty)
    """
    config = _resolve_config(config)
    floor = settings.match_min_persist_score if min_persist_score is None else min_persist_score

    trip = await get_or_404(db, Trip, trip_id, "Trip")
    validate_trip_fields(trip)

    if trip.status not in MATCHABLE_TRIP_STATUSES:
        logger.debug("Trip %s is %s; no matches generated", trip_id, trip.status.value)
        return []

    try:
        result = await db.execute(
            select(Parcel).where(
                Parcel.status == ParcelStatus.PENDING,
                Parcel.sender_id != trip.courier_id
            ).order_by(Parcel.id)
        )
        parcels = list(result.scalars().all())
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Failed to load candidate parcels for trip %s: %s", trip_id, exc)
        raise DependencyUnavailableError("database")

    candidates = []
    for parcel in parcels:
        scored = _score_candidate(parcel, trip, config)
        if scored is not None:
            candidates.append(_Candidate(parcel.id, trip.id, trip.courier_id, scored.score))

    created = await _persist_candidates(db, candidates, floor)
    logger.info(
        "Generated %d matches for trip %s (%d candidate parcels)",
        len(created), trip_id, len(candidates)
    )
    return created


async def score_pair(
    db: AsyncSession,
    parcel_id: int,
    trip_id: int,
    config: Optional[MatchingConfig] = None
) -> MatchScore:
    """Score a parcel/trip pair without storing anything."""
    parcel = await get_or_404(db, Parcel, parcel_id, "Parcel")
    trip = await get_or_404(db, Trip, trip_id, "Trip")
    return score_match(parcel, trip, _resolve_config(config))
