from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notifier.config.settings import settings
from notifier.db.models import Notification, NotificationStatus, NotificationTarget
from notifier.db.session import get_sync_session
from notifier.schemas.notification_schemas import (
    CreateNotificationRequest,
    NotificationListQueryParams,
    NotificationResponse,
    UpdateNotificationRequest,
)
from notifier.services.notifications.dispatch_service import (
    DispatchOutcome,
    NotificationDispatchService,
    get_dispatch_service,
)
from notifier.utils.datetime_utils import is_claim_live, naive_utc_now, optional_naive_utc
from notifier.utils.errors import DatabaseError
from notifier.utils.logging import get_logger

logger = get_logger()


class NotificationService:
    """Admin-side CRUD for notifications; every send goes through the dispatcher"""

    def __init__(self, db_session: Session, dispatcher: NotificationDispatchService):
        self.db = db_session
        self.dispatcher = dispatcher

    async def get_notification_by_id(self, notification_id: str) -> Notification:
        """Get notification by ID or raise NOTIFICATION_NOT_FOUND"""
        notification = self.db.execute(
            select(Notification).where(Notification.id == notification_id)
        ).scalar_one_or_none()
        if notification is None:
            raise ValueError("NOTIFICATION_NOT_FOUND")
        return notification

    async def get_notifications(
        self, query_params: NotificationListQueryParams
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Filtered, newest-first page of notifications plus the total count"""
        try:
            conditions = []
            if query_params.status:
                conditions.append(
                    Notification.status == NotificationStatus(query_params.status)
                )
            if query_params.target:
                conditions.append(
                    Notification.target == NotificationTarget(query_params.target)
                )
            if query_params.search and query_params.search.strip():
                term = query_params.search.strip()
                conditions.append(
                    or_(
                        Notification.title.icontains(term, autoescape=True),
                        Notification.message.icontains(term, autoescape=True),
                    )
                )

            total = self.db.execute(
                select(func.count()).select_from(Notification).where(*conditions)
            ).scalar_one()

            stmt = (
                select(Notification)
                .where(*conditions)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .offset((query_params.page - 1) * query_params.limit)
                .limit(query_params.limit)
            )
            notifications = self.db.scalars(stmt).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list notifications: {e}")
            raise ValueError("NOTIFICATIONS_RETRIEVAL_FAILED")

        items = [
            NotificationResponse.from_model(n).model_dump(by_alias=True)
            for n in notifications
        ]
        return items, total

    async def create_notification(
        self, data: CreateNotificationRequest
    ) -> Tuple[Notification, Optional[DispatchOutcome]]:
        """
        Persist a new notification and, if it was requested as sent, dispatch it.

        A record asked for as "sent" is stored as a draft first so the dispatcher
        can claim it like any other record.
        """
        scheduled_for = optional_naive_utc(data.scheduled_for)
        status = self.determine_status(data.status, scheduled_for)
        send_now = status == NotificationStatus.SENT

        notification = Notification(
            title=data.title,
            message=data.message,
            target=NotificationTarget(data.target),
            recipient_ids=self._recipients_for(data.target, data.recipient_ids),
            scheduled_for=scheduled_for,
            status=NotificationStatus.DRAFT if send_now else status,
        )

        try:
            self.db.add(notification)
            self.db.commit()
            self.db.refresh(notification)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(
                f"Failed to create notification: {e}", "NOTIFICATION_CREATION_FAILED"
            )

        logger.info(
            f"Created notification {notification.id} ('{notification.title}') "
            f"as {notification.status.value}"
        )

        outcome = None
        if send_now:
            outcome = await self.dispatcher.dispatch_or_fail(notification)
        return notification, outcome

    async def update_notification(
        self, notification_id: str, data: UpdateNotificationRequest
    ) -> Tuple[Notification, Optional[DispatchOutcome]]:
        notification = await self.get_notification_by_id(notification_id)

        if notification.status == NotificationStatus.SENT:
            raise ValueError("NOTIFICATION_ALREADY_SENT")
        if is_claim_live(
            notification.dispatch_claimed_at,
            naive_utc_now(),
            settings.DISPATCH_CLAIM_TTL_SECONDS,
        ):
            raise ValueError("NOTIFICATION_IN_PROGRESS")

        # Only fields present in the request body are applied
        provided = data.model_fields_set
        requested_status = data.status if "status" in provided else None

        if data.title is not None:
            notification.title = data.title
        if data.message is not None:
            notification.message = data.message
        if data.target is not None:
            notification.target = NotificationTarget(data.target)
        if "scheduled_for" in provided:
            notification.scheduled_for = optional_naive_utc(data.scheduled_for)

        if notification.target == NotificationTarget.ALL:
            notification.recipient_ids = []
        elif "recipient_ids" in provided:
            notification.recipient_ids = list(data.recipient_ids or [])

        send_now = requested_status == NotificationStatus.SENT.value
        if requested_status and not send_now:
            notification.status = NotificationStatus(requested_status)

        try:
            self.db.commit()
            self.db.refresh(notification)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(
                f"Failed to update notification: {e}", "NOTIFICATION_UPDATE_FAILED"
            )

        logger.info(f"Updated notification {notification.id} ('{notification.title}')")

        outcome = None
        if send_now:
            outcome = await self.dispatcher.dispatch_or_fail(notification)
        return notification, outcome

    async def delete_notification(self, notification_id: str) -> None:
        notification = await self.get_notification_by_id(notification_id)
        try:
            self.db.delete(notification)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(
                f"Failed to delete notification: {e}", "NOTIFICATION_DELETION_FAILED"
            )
        logger.info(f"Deleted notification {notification_id}")

    @staticmethod
    def determine_status(
        requested: Optional[str], scheduled_for, now=None
    ) -> NotificationStatus:
        """
        Status for a freshly created notification.

        A future scheduled_for always schedules it, even over a requested
        "sent". A past one with no explicit status leaves it as a draft.
        """
        now = now or naive_utc_now()
        status = NotificationStatus(requested or NotificationStatus.DRAFT.value)

        if scheduled_for is not None:
            if scheduled_for > now:
                return NotificationStatus.SCHEDULED
            if requested is None:
                return NotificationStatus.DRAFT
        return status

    @staticmethod
    def _recipients_for(target: str, recipient_ids: List[Any]) -> List[Any]:
        if target == NotificationTarget.ALL.value:
            return []
        return list(recipient_ids)


def get_notification_service(
    db: Session = Depends(get_sync_session),
    dispatcher: NotificationDispatchService = Depends(get_dispatch_service),
) -> NotificationService:
    """Dependency to provide NotificationService instance"""
    return NotificationService(db, dispatcher)
