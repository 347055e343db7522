"""
Notification Service - In-app notifications for users.

Notifications are added to the caller's session; the caller owns the commit.
"""

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.db.models import Notification
from leadhub.exceptions import ResourceNotFoundError
from leadhub.models.api import NotificationType

logger = get_logger(__name__)


class NotificationService:
    """Create, list and acknowledge user notifications."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize notification service with database session."""
        self.session = session

    def notify(
        self,
        user_id: int,
        type: NotificationType,
        title: str,
        message: str,
        extra: dict[str, Any] | None = None,
    ) -> Notification:
        """Stage a notification for the user (flushed with the caller's transaction)."""
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            read=False,
            extra=extra or {},
        )
        self.session.add(notification)
        logger.info("notification_created", user_id=user_id, type=type.value)
        return notification

    def notify_low_balance(self, user_id: int, threshold: int, balance: int) -> Notification:
        """Stage a low-balance notification for a crossed threshold."""
        if threshold == 0:
            title = "No Coins Remaining"
            message = (
                "You have no LeadCoins remaining. Purchase more coins to continue viewing leads."
            )
        else:
            title = "Low Coin Balance Alert"
            message = (
                f"Your LeadCoin balance is running low ({threshold} coins remaining). "
                "Consider purchasing more coins to continue viewing leads."
            )
        return self.notify(
            user_id,
            NotificationType.LOW_BALANCE,
            title,
            message,
            {"threshold": threshold, "currentBalance": balance},
        )

    async def list_for_user(self, user_id: int, limit: int = 50) -> list[Notification]:
        """Newest notifications first."""
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_read(self, user_id: int, notification_id: int) -> Notification:
        """
        Mark one notification as read.

        Raises:
            ResourceNotFoundError: Notification missing or owned by another user
        """
        notification = await self.session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise ResourceNotFoundError("Notification", notification_id)

        notification.read = True
        await self.session.commit()
        return notification

    async def mark_all_read(self, user_id: int) -> None:
        """Mark every unread notification of the user as read."""
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True)
        )
        await self.session.execute(stmt)
        await self.session.commit()
