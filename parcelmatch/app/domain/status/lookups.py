"""
Row and actor lookups shared by the status services.

Authorization is decided from the users table at request time; roles and
ownership passed in by the caller are never trusted.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parcelmatch.app.core.exceptions import (
    DependencyUnavailableError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
)
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.models.user import User

logger = logging.getLogger("parcelmatch.status")


async def _fetch(db: AsyncSession, model, entity_id: int, resource: str):
    try:
        result = await db.execute(select(model).where(model.id == entity_id))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Failed to load %s %s: %s", resource, entity_id, exc)
        raise DependencyUnavailableError("database")
    return result.scalar_one_or_none()


async def get_or_404(db: AsyncSession, model, entity_id: int, resource: str):
    entity = await _fetch(db, model, entity_id, resource)
    if entity is None:
        raise ResourceNotFoundError(resource, entity_id)
    return entity


async def load_actor(db: AsyncSession, actor_id: int) -> User:
    actor = await _fetch(db, User, actor_id, "User")
    if actor is None or not actor.is_active:
        raise InsufficientPermissionsError("Unknown or inactive user", details={"actor_id": actor_id})
    return actor


def is_admin(actor: User) -> bool:
    return actor.role == UserRole.ADMIN


async def commit_or_unavailable(db: AsyncSession, what: str) -> None:
    """Commit the status change; a store failure rolls back and surfaces as 503."""
    try:
        await db.commit()
    except (SQLAlchemyError, OSError) as exc:
        await db.rollback()
        logger.error("Failed to commit %s: %s", what, exc)
        raise DependencyUnavailableError("database")
