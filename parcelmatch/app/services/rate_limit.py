"""
Creation rate limiting for parcels and trips.

Sliding-window count of the rows a user created recently. The limiter fails
open: if the count query errors, creation is allowed and the failure is only
logged, because keeping the creation path available matters more than strict
throttling.
"""

import enum
import logging
from datetime import timedelta
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parcelmatch.app.core.config import settings
from parcelmatch.app.db.session import utc_now
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.trip import Trip

logger = logging.getLogger("parcelmatch.rate_limit")


class EntityKind(str, enum.Enum):
    """Rate-limited entity tables."""
    PARCELS = "parcels"
    TRIPS = "trips"


# Table and owner column per entity kind
_OWNER_COLUMNS = {
    EntityKind.PARCELS: (Parcel, Parcel.sender_id),
    EntityKind.TRIPS: (Trip, Trip.courier_id),
}


class RateLimitResult(BaseModel):
    """Outcome of a rate limit check."""
    allowed: bool
    count: int


async def _discard_failed_transaction(db: AsyncSession) -> None:
    """Roll back so the caller can keep using the session after a failed count."""
    try:
        await db.rollback()
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Rollback after failed rate limit count also failed: %s", exc)


async def check_create_rate_limit(
    db: AsyncSession,
    user_id: int,
    entity_kind: EntityKind,
    window_minutes: Optional[int] = None,
    max_count: Optional[int] = None
) -> RateLimitResult:
    """
    Check whether a user may create another parcel or trip.

    Args:
        db: Database session
        user_id: Owner to count rows for (sender or courier)
        entity_kind: Which table to count
        window_minutes: Sliding window length (settings default: 15)
        max_count: Creations allowed inside the window (settings default: 3)

    Returns:
        RateLimitResult; allowed is False once count >= max_count.
        On a storage error: allowed=True, count=0.
    """
    window_minutes = window_minutes if window_minutes is not None else settings.rate_limit_window_minutes
    max_count = max_count if max_count is not None else settings.rate_limit_max_creations

    model, owner_column = _OWNER_COLUMNS[EntityKind(entity_kind)]
    since = utc_now() - timedelta(minutes=window_minutes)

    try:
        result = await db.execute(
            select(func.count(model.id)).where(
                owner_column == user_id,
                model.created_at >= since
            )
        )
        count = result.scalar() or 0
    except (SQLAlchemyError, OSError) as exc:
        logger.warning(
            "Rate limit count failed for %s (user %s), allowing creation: %s",
            entity_kind.value if isinstance(entity_kind, EntityKind) else entity_kind,
            user_id,
            exc
        )
        await _discard_failed_transaction(db)
        return RateLimitResult(allowed=True, count=0)

    return RateLimitResult(allowed=count < max_count, count=count)
