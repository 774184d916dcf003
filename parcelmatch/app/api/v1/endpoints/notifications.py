"""
Notification API Endpoints.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from parcelmatch.app.db.session import get_db
from parcelmatch.app.core.dependencies import get_current_user
from parcelmatch.app.core.exceptions import ResourceNotFoundError
from parcelmatch.app.models.user import User
from parcelmatch.app.services.notification_service import NotificationService
from parcelmatch.app.schemas.notification import NotificationResponse

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List current user's notifications, newest first."""
    notifications = await NotificationService.list_for_user(db, current_user.id, unread_only=unread_only)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.patch("/{notification_id}/read")
async def mark_notification_read(
    notification_id: int = Path(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark a specific notification as read."""
    if not await NotificationService.mark_read(db, notification_id, current_user.id):
        raise ResourceNotFoundError("Notification", notification_id)

    await db.commit()
    return {"status": "success"}
