"""
Notification Service - in-app notifications for the client dashboard.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from billing.fsm.states import NotificationType
from billing.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Fire-and-forget notification sink."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(
        self,
        user_id: uuid.UUID,
        type: NotificationType,
        title: str,
        message: str,
    ) -> None:
        """
        Queue a notification on the current transaction.

        Never raises; a failed notification must not fail the caller.
        """
        try:
            self.db.add(
                Notification(
                    user_id=user_id,
                    type=type.value,
                    title=title,
                    message=message,
                )
            )
            logger.debug(f"Notification {type.value} queued for user {user_id}")
        except Exception as e:
            logger.warning(f"Failed to queue notification for user {user_id}: {e}")
