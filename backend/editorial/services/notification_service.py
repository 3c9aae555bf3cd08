"""
Notification delivery for workflow events.

The workflow depends only on the ``Notifier`` protocol; the default
implementation records notifications in MongoDB, from where the mailer
picks them up. Delivery failures surface as ``ExternalFailureError``.
"""
from typing import Iterable, Protocol
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from editorial.core.collections import Collections
from editorial.core.database import get_database
from editorial.core.error_handling import ExternalFailureError, NotFoundError
from editorial.models.notification import NotificationInDB, NotificationType
from editorial.utils.workflow_utils import WorkflowUtils

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(
        self,
        recipient,
        notification_type: NotificationType,
        subject: str,
        message: str,
        related_manuscript=None,
        related_review=None
    ) -> None:
        ...


class NotificationService:
    """Stores notifications in the notifications collection."""

    def __init__(self, db: AsyncIOMotorDatabase = None):
        self.db = db

    def _get_collection(self):
        if self.db is None:
            self.db = get_database()
        return self.db[Collections.NOTIFICATIONS]

    async def notify(
        self,
        recipient,
        notification_type: NotificationType,
        subject: str,
        message: str,
        related_manuscript=None,
        related_review=None
    ) -> None:
        notification = NotificationInDB(
            recipient=recipient,
            type=NotificationType(notification_type).value,
            subject=subject,
            message=message,
            related_manuscript=related_manuscript,
            related_review=related_review
        )
        try:
            await self._get_collection().insert_one(notification.dict(by_alias=True))
        except PyMongoError as e:
            raise ExternalFailureError(
                f"Failed to send {notification.type} notification: {e}",
                service="notifier",
                cause=e
            )
        logger.debug(f"Queued {notification.type} notification for {recipient}")

    async def list_for_recipient(self, recipient, unread_only: bool = False, limit: int = 50):
        """Newest first."""
        query = {"recipient": recipient}
        if unread_only:
            query["is_read"] = False
        cursor = self._get_collection().find(query).sort("created_at", -1).limit(limit)
        return [NotificationInDB(**doc) async for doc in cursor]

    async def mark_read(self, notification_id, recipient) -> None:
        """Only the recipient can mark a notification as read."""
        result = await self._get_collection().update_one(
            {"_id": WorkflowUtils.to_object_id(notification_id, "notification"), "recipient": recipient},
            {"$set": {"is_read": True}}
        )
        if result.matched_count == 0:
            raise NotFoundError("Notification not found", resource="notification", resource_id=notification_id)


async def notify_each(notifier: Notifier, recipients: Iterable, notification_type: NotificationType,
                      subject: str, message: str, related_manuscript=None) -> None:
    """Fan a notification out through any ``Notifier``."""
    for recipient in recipients:
        await notifier.notify(recipient, notification_type, subject, message, related_manuscript)
