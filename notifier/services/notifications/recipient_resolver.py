from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from notifier.db.models import Notification, NotificationTarget, User
from notifier.services.onesignal.onesignal_client import (
    Broadcast,
    ExternalIds,
    RecipientSet,
)
from notifier.utils.identifiers import parse_user_ids
from notifier.utils.logging import get_logger

logger = get_logger()

NO_VALID_USER_IDS = "No valid user IDs found"
NO_ACTIVE_USERS = "No active users found"


class RecipientResolutionError(Exception):
    """Raised when a targeted notification has nobody left to send to."""

    def __init__(self, message: str, error_code: str = "RECIPIENT_RESOLUTION_FAILED"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class RecipientResolver:
    """Turns a notification's target into the recipient set handed to OneSignal"""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def resolve(self, notification: Notification) -> RecipientSet:
        if notification.target == NotificationTarget.ALL:
            return Broadcast()

        candidate_ids = parse_user_ids(notification.recipient_ids)
        dropped = len(notification.recipient_ids or []) - len(candidate_ids)
        if dropped:
            logger.debug(
                f"Dropped {dropped} malformed or duplicate recipient reference(s) "
                f"for notification {notification.id}"
            )

        if not candidate_ids:
            raise RecipientResolutionError(NO_VALID_USER_IDS, "NO_VALID_USER_IDS")

        active_ids = await self._get_active_user_ids(candidate_ids)
        if not active_ids:
            raise RecipientResolutionError(NO_ACTIVE_USERS, "NO_ACTIVE_USERS")

        return ExternalIds(active_ids)

    async def _get_active_user_ids(self, user_ids: List[str]) -> List[str]:
        """Active subset of user_ids, in the order given"""
        result = self.db.execute(
            select(User.id).where(User.id.in_(user_ids), User.is_active.is_(True))
        )
        active = set(result.scalars().all())
        return [user_id for user_id in user_ids if user_id in active]
