import asyncio
import uuid
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from notifier.config.settings import settings
from notifier.db.models import Notification, NotificationStatus
from notifier.db.session import SessionLocal
from notifier.services.notifications.dispatch_service import (
    NotificationDispatchService,
    PushGateway,
)
from notifier.services.onesignal.onesignal_client import OneSignalClient
from notifier.utils.context import request_id_scope
from notifier.utils.datetime_utils import (
    naive_utc_now,
    seconds_until_next_boundary,
    utc_now,
)
from notifier.utils.logging import get_logger

logger = get_logger()


@dataclass
class TickSummary:
    """Counts for one pass over the due notifications"""

    request_id: str
    started_at: datetime
    found: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    failures: List[Dict[str, Optional[str]]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "startedAt": self.started_at.isoformat(),
            "found": self.found,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "failures": self.failures,
        }


class ScheduledNotificationPoller:
    """
    Finds scheduled notifications that are due and dispatches them one by one.

    A failure, or even an exception, on one record never stops the rest of the
    batch: the offending record is forced to FAILED and the loop moves on.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        gateway_factory: Callable[[], PushGateway] = OneSignalClient.from_settings,
        clock: Callable[[], datetime] = naive_utc_now,
        claim_ttl_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.gateway_factory = gateway_factory
        self.clock = clock
        self.claim_ttl_seconds = (
            claim_ttl_seconds
            if claim_ttl_seconds is not None
            else settings.DISPATCH_CLAIM_TTL_SECONDS
        )

    async def get_due_notifications(
        self, db_session: Session, now: datetime
    ) -> List[Notification]:
        stale_before = now - timedelta(seconds=self.claim_ttl_seconds)
        stmt = (
            select(Notification)
            .where(
                and_(
                    Notification.status == NotificationStatus.SCHEDULED,
                    Notification.scheduled_for.is_not(None),
                    Notification.scheduled_for <= now,
                    or_(
                        Notification.dispatch_claimed_at.is_(None),
                        Notification.dispatch_claimed_at <= stale_before,
                    ),
                )
            )
            .order_by(Notification.scheduled_for.asc(), Notification.created_at.asc())
        )
        return list(db_session.scalars(stmt).all())

    async def run_tick(self, request_id: str = "scheduler") -> TickSummary:
        with request_id_scope(request_id):
            tick_logger = get_logger()
            now = self.clock()
            summary = TickSummary(request_id=request_id, started_at=now)

            db_session = self.session_factory()
            try:
                dispatcher = NotificationDispatchService(
                    db_session,
                    self.gateway_factory(),
                    claim_ttl_seconds=self.claim_ttl_seconds,
                    clock=self.clock,
                )

                tick_logger.debug(
                    f"Checking for scheduled notifications at {now.isoformat()}"
                )
                due_notifications = await self.get_due_notifications(db_session, now)
                summary.found = len(due_notifications)

                if not due_notifications:
                    tick_logger.info("No scheduled notifications to process")
                    return summary

                tick_logger.info(
                    f"Found {summary.found} scheduled notification(s) to process"
                )

                # Ids and titles are read now; a failed record's rollback
                # expires every loaded instance in the session
                due = [(n.id, n.title) for n in due_notifications]
                for notification_id, title in due:
                    await self._process_one(dispatcher, notification_id, title, summary)

                tick_logger.info(
                    f"Scheduled notification tick completed: {summary.sent} sent, "
                    f"{summary.failed} failed, {summary.skipped} skipped"
                )
                return summary
            finally:
                db_session.close()

    async def _process_one(
        self,
        dispatcher: NotificationDispatchService,
        notification_id: str,
        title: str,
        summary: TickSummary,
    ) -> None:
        tick_logger = get_logger()
        tick_logger.info(f"Processing: '{title}' (ID: {notification_id})")

        try:
            notification = await dispatcher.get_notification(notification_id)
            if notification is None:
                tick_logger.warning(
                    f"Notification {notification_id} ('{title}') disappeared before dispatch"
                )
                summary.skipped += 1
                return
            outcome = await dispatcher.dispatch(notification)
        except Exception as e:
            reason = f"Unexpected error during dispatch: {e}"
            tick_logger.error(
                f"Error processing notification {notification_id} ('{title}'): {e}"
            )
            summary.failed += 1
            summary.failures.append({"notificationId": notification_id, "reason": reason})
            try:
                await dispatcher.mark_failed(notification_id, reason)
            except Exception as mark_error:
                tick_logger.error(
                    f"Could not mark notification {notification_id} as failed: {mark_error}"
                )
            return

        if outcome.sent:
            summary.sent += 1
        elif outcome.failed:
            summary.failed += 1
            summary.failures.append(
                {"notificationId": notification_id, "reason": outcome.reason}
            )
        else:
            summary.skipped += 1


class NotificationScheduler:
    """
    Owns the periodic poller: one tick at start-up, then one per interval.

    Nothing runs until `start()` is awaited, and `shutdown()` lets the
    in-flight tick finish before returning. Ticks never overlap, including
    ones requested through `trigger()`.
    """

    def __init__(
        self,
        poller: ScheduledNotificationPoller,
        interval_seconds: int = 60,
        run_on_startup: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.poller = poller
        self.interval_seconds = interval_seconds
        self.run_on_startup = run_on_startup
        self.clock = clock

        self.last_summary: Optional[TickSummary] = None
        self.tick_count = 0

        self._lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls) -> "NotificationScheduler":
        return cls(
            poller=ScheduledNotificationPoller(),
            interval_seconds=settings.SCHEDULER_INTERVAL_SECONDS,
            run_on_startup=settings.SCHEDULER_RUN_ON_STARTUP,
        )

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Notification scheduler already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="notification-scheduler")
        logger.info(
            f"Notification scheduler started (every {self.interval_seconds}s)"
        )

    async def shutdown(self, timeout: float = 30.0) -> None:
        if self._task is None:
            return

        if self._stop_event is not None:
            self._stop_event.set()

        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Notification scheduler did not stop within {timeout}s, cancelling"
            )
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task

        self._task = None
        logger.info("Notification scheduler stopped")

    async def trigger(self, request_id: Optional[str] = None) -> TickSummary:
        """Run one tick now, waiting for any tick already in progress"""
        async with self._lock:
            summary = await self.poller.run_tick(
                request_id or f"scheduler-manual-{uuid.uuid4().hex[:8]}"
            )
            self.last_summary = summary
            self.tick_count += 1
            return summary

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "intervalSeconds": self.interval_seconds,
            "tickCount": self.tick_count,
            "lastTick": self.last_summary.to_dict() if self.last_summary else None,
        }

    async def _run(self) -> None:
        assert self._stop_event is not None

        if self.run_on_startup:
            await self._safe_tick("startup")

        while not self._stop_event.is_set():
            delay = seconds_until_next_boundary(self.clock(), self.interval_seconds)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            await self._safe_tick("interval")

    async def _safe_tick(self, reason: str) -> Optional[TickSummary]:
        try:
            return await self.trigger(f"scheduler-{reason}-{uuid.uuid4().hex[:8]}")
        except Exception as e:
            logger.error(f"Scheduled notification tick failed: {e}")
            return None
