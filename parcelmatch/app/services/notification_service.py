"""
Notification Service.

Queues in-app notifications for senders and couriers. Rows are flushed into
the caller's transaction so a notification only exists if the change that
triggered it was committed.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from typing import Optional, Dict, Any, List

from parcelmatch.app.db.session import utc_now
from parcelmatch.app.models.notification import Notification, NotificationType

logger = logging.getLogger("parcelmatch.notifications")


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            metadata_payload=metadata
        )
        db.add(notif)
        await db.flush()  # Caller commits
        logger.debug("Queued %s notification for user %s", type.value, user_id)
        return notif

    @staticmethod
    async def notify_courier_of_match(
        db: AsyncSession,
        courier_id: int,
        match_id: int,
        parcel_id: int,
        trip_id: int,
        score: float
    ) -> Notification:
        """Tell a courier that a parcel fits one of their trips."""
        return await NotificationService.create_notification(
            db,
            user_id=courier_id,
            title="New parcel match",
            message=f"Parcel #{parcel_id} matches your trip #{trip_id} (score {score:.0f}/100).",
            type=NotificationType.MATCH_FOUND,
            metadata={"match_id": match_id, "parcel_id": parcel_id, "trip_id": trip_id, "score": score}
        )

    @staticmethod
    async def notify_sender_of_acceptance(
        db: AsyncSession,
        sender_id: int,
        match_id: int,
        parcel_id: int,
        trip_id: int,
        total_amount: Optional[float],
        currency: Optional[str]
    ) -> Notification:
        """Tell a sender that a courier accepted their parcel."""
        price = f" Total: {total_amount:.2f} {currency}." if total_amount is not None else ""
        return await NotificationService.create_notification(
            db,
            user_id=sender_id,
            title="Courier found",
            message=f"Your parcel #{parcel_id} was accepted on trip #{trip_id}.{price}",
            type=NotificationType.MATCH_ACCEPTED,
            metadata={"match_id": match_id, "parcel_id": parcel_id, "trip_id": trip_id}
        )

    @staticmethod
    async def notify_sender_of_status(
        db: AsyncSession,
        sender_id: int,
        parcel_id: int,
        status: str
    ) -> Notification:
        """Tell a sender that their parcel moved to a new delivery status."""
        return await NotificationService.create_notification(
            db,
            user_id=sender_id,
            title="Parcel update",
            message=f"Your parcel #{parcel_id} is now {status.replace('_', ' ')}.",
            type=NotificationType.PARCEL_UPDATE,
            metadata={"parcel_id": parcel_id, "status": status}
        )

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: int, unread_only: bool = False) -> List[Notification]:
        """Return a user's notifications, newest first."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)
        query = query.order_by(Notification.id.desc())

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark one of the user's notifications as read."""
        result = await db.execute(
            update(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id
            ).values(is_read=True, read_at=utc_now())
        )
        return result.rowcount > 0
