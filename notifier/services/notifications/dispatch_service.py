import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Protocol

from fastapi import Depends
from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from notifier.config.settings import settings
from notifier.db.models import (
    CLAIMABLE_STATUSES,
    Notification,
    NotificationStatus,
)
from notifier.db.session import get_sync_session
from notifier.services.notifications.recipient_resolver import (
    RecipientResolutionError,
    RecipientResolver,
)
from notifier.services.onesignal.onesignal_client import (
    Broadcast,
    DeliveryResult,
    ExternalIds,
    OneSignalClient,
    RecipientSet,
    get_onesignal_client,
)
from notifier.utils.datetime_utils import naive_utc_now
from notifier.utils.logging import get_logger

logger = get_logger()


class PushGateway(Protocol):
    async def send(
        self,
        title: str,
        body: str,
        recipients: RecipientSet,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DeliveryResult: ...


class DispatchResult(enum.Enum):
    SENT = "sent"
    FAILED = "failed"
    REFUSED = "refused"


ALREADY_SENT = "ALREADY_SENT"
IN_PROGRESS = "IN_PROGRESS"
DISPATCH_ERROR = "DISPATCH_ERROR"


@dataclass
class DispatchOutcome:
    """What happened to one notification on one dispatch attempt"""

    result: DispatchResult
    notification_id: str
    reason: Optional[str] = None
    error_code: Optional[str] = None
    provider_notification_id: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.result == DispatchResult.SENT

    @property
    def failed(self) -> bool:
        return self.result == DispatchResult.FAILED

    @property
    def refused(self) -> bool:
        return self.result == DispatchResult.REFUSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.value,
            "notificationId": self.notification_id,
            "reason": self.reason,
            "errorCode": self.error_code,
            "providerNotificationId": self.provider_notification_id,
        }


class NotificationDispatchService:
    """
    The single send routine behind "send now", CRUD sends and the scheduler.

    Flow: terminal-state guard -> atomic claim -> resolve recipients ->
    one gateway call -> persist sent/failed and release the claim.

    Per-record failures are returned as DispatchOutcome, never raised. Database
    errors do propagate; callers that must keep going (the scheduler) use
    `mark_failed` afterwards.
    """

    def __init__(
        self,
        db_session: Session,
        gateway: PushGateway,
        claim_ttl_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = naive_utc_now,
    ):
        self.db = db_session
        self.gateway = gateway
        self.claim_ttl_seconds = (
            claim_ttl_seconds
            if claim_ttl_seconds is not None
            else settings.DISPATCH_CLAIM_TTL_SECONDS
        )
        self.clock = clock
        self.resolver = RecipientResolver(db_session)

    async def get_notification(self, notification_id: str) -> Optional[Notification]:
        result = self.db.execute(
            select(Notification).where(Notification.id == notification_id)
        )
        return result.scalar_one_or_none()

    async def dispatch(self, notification: Notification) -> DispatchOutcome:
        if (
            notification.status == NotificationStatus.SENT
            and notification.sent_at is not None
        ):
            logger.warning(
                f"Refusing to dispatch notification {notification.id} "
                f"('{notification.title}'): already sent at {notification.sent_at.isoformat()}"
            )
            return self._refused(notification, ALREADY_SENT)

        if not await self._claim(notification):
            self.db.refresh(notification)
            code = (
                ALREADY_SENT
                if notification.status == NotificationStatus.SENT
                else IN_PROGRESS
            )
            logger.warning(
                f"Could not claim notification {notification.id} "
                f"('{notification.title}') for dispatch: {code}"
            )
            return self._refused(notification, code)

        try:
            recipients = await self.resolver.resolve(notification)
        except RecipientResolutionError as e:
            return await self._finalize_failure(notification, e.message, e.error_code)

        delivery = await self.gateway.send(
            notification.title,
            notification.message,
            recipients,
            self.build_metadata(notification, recipients),
        )

        if delivery.success:
            return await self._finalize_success(notification, delivery)

        return await self._finalize_failure(
            notification,
            delivery.error or "Unknown delivery error",
            "DELIVERY_FAILED",
        )

    async def dispatch_or_fail(self, notification: Notification) -> DispatchOutcome:
        """
        `dispatch` for callers that must leave the record settled.

        An unexpected error is logged, the record is forced to FAILED with its
        claim released, and a FAILED outcome is returned instead of raising.
        """
        notification_id = notification.id
        try:
            return await self.dispatch(notification)
        except Exception as e:
            reason = str(e) or e.__class__.__name__
            logger.error(f"Error sending notification {notification_id}: {reason}")
            try:
                await self.mark_failed(notification_id, reason)
            except Exception as mark_error:
                logger.error(
                    f"Could not mark notification {notification_id} as failed: {mark_error}"
                )
            return DispatchOutcome(
                result=DispatchResult.FAILED,
                notification_id=notification_id,
                reason=reason,
                error_code=DISPATCH_ERROR,
            )

    async def mark_failed(self, notification_id: str, reason: str) -> bool:
        """
        Force a record to FAILED after an unexpected error and release its claim.

        A record that already reached SENT is left alone. Returns True if a row changed.
        """
        self.db.rollback()
        result = self.db.execute(
            update(Notification)
            .where(
                and_(
                    Notification.id == notification_id,
                    Notification.status != NotificationStatus.SENT,
                )
            )
            .values(
                status=NotificationStatus.FAILED,
                last_error=reason,
                dispatch_claimed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    @staticmethod
    def build_metadata(
        notification: Notification, recipients: RecipientSet
    ) -> Dict[str, Any]:
        """Correlation data that rides along with the push to the mobile app"""
        if isinstance(recipients, Broadcast):
            return {"notificationId": notification.id, "target": "all"}

        metadata: Dict[str, Any] = {
            "notificationId": notification.id,
            "target": "users",
        }
        if isinstance(recipients, ExternalIds):
            metadata["userIds"] = list(recipients.ids)
        return metadata

    async def _claim(self, notification: Notification) -> bool:
        """
        Compare-and-set the in-flight marker.

        Only one caller can win for a given record until the claim is released
        or outlives `claim_ttl_seconds`.
        """
        now = self.clock()
        stale_before = now - timedelta(seconds=self.claim_ttl_seconds)
        result = self.db.execute(
            update(Notification)
            .where(
                and_(
                    Notification.id == notification.id,
                    Notification.status.in_(CLAIMABLE_STATUSES),
                    or_(
                        Notification.dispatch_claimed_at.is_(None),
                        Notification.dispatch_claimed_at <= stale_before,
                    ),
                )
            )
            .values(dispatch_claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount != 1:
            return False

        notification.dispatch_claimed_at = now
        return True

    async def _finalize_success(
        self, notification: Notification, delivery: DeliveryResult
    ) -> DispatchOutcome:
        notification.status = NotificationStatus.SENT
        notification.sent_at = self.clock()
        notification.provider_notification_id = delivery.notification_id
        notification.last_error = None
        notification.dispatch_claimed_at = None
        self.db.commit()
        self.db.refresh(notification)

        logger.info(
            f"Sent notification {notification.id} ('{notification.title}'), "
            f"OneSignal id {delivery.notification_id}"
        )
        return DispatchOutcome(
            result=DispatchResult.SENT,
            notification_id=notification.id,
            provider_notification_id=delivery.notification_id,
        )

    async def _finalize_failure(
        self, notification: Notification, reason: str, error_code: str
    ) -> DispatchOutcome:
        notification.status = NotificationStatus.FAILED
        notification.last_error = reason
        notification.dispatch_claimed_at = None
        self.db.commit()
        self.db.refresh(notification)

        logger.error(
            f"Failed to send notification {notification.id} "
            f"('{notification.title}'): {reason}"
        )
        return DispatchOutcome(
            result=DispatchResult.FAILED,
            notification_id=notification.id,
            reason=reason,
            error_code=error_code,
        )

    @staticmethod
    def _refused(notification: Notification, code: str) -> DispatchOutcome:
        reason = (
            "Notification has already been sent"
            if code == ALREADY_SENT
            else "Notification is already being sent"
        )
        return DispatchOutcome(
            result=DispatchResult.REFUSED,
            notification_id=notification.id,
            reason=reason,
            error_code=code,
        )


def get_dispatch_service(
    db: Session = Depends(get_sync_session),
    gateway: OneSignalClient = Depends(get_onesignal_client),
) -> NotificationDispatchService:
    """Dependency to provide NotificationDispatchService instance"""
    return NotificationDispatchService(db, gateway)
