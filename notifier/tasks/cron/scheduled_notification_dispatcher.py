import asyncio

from celery.signals import worker_ready

from notifier.celery import celery
from notifier.config.settings import settings
from notifier.services.notifications.scheduler_service import (
    ScheduledNotificationPoller,
)
from notifier.utils.logging import get_logger


@celery.task(bind=True)
def scheduled_notification_dispatcher_task(self, request_id: str):
    """
    Per-minute task that sends every scheduled notification whose time has come.

    Beat fires it every minute when SCHEDULER_MODE is "celery". Each due record
    is dispatched through the same routine as a manual send, and a failure on
    one record never stops the rest of the batch.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(_async_scheduled_notification_dispatcher(request_id))


async def _async_scheduled_notification_dispatcher(request_id: str):
    logger = get_logger().bind(request_id=request_id)

    try:
        summary = await ScheduledNotificationPoller().run_tick(request_id)

        logger.info(
            f"Scheduled notification dispatch completed: {summary.sent} sent, "
            f"{summary.failed} failed, {summary.skipped} skipped of {summary.found}"
        )
        return {"success": True, **summary.to_dict()}

    except Exception as e:
        logger.error(
            f"Scheduled notification dispatcher task exception: {e}", exc_info=True
        )
        return {
            "success": False,
            "error": str(e),
            "request_id": request_id,
        }


@worker_ready.connect
def dispatch_on_worker_ready(sender=None, **kwargs):
    """Run one pass as soon as a worker comes up instead of waiting for the next minute"""
    if settings.SCHEDULER_MODE != "celery":
        return

    scheduled_notification_dispatcher_task.delay("scheduled_notification_dispatcher_startup")  # type: ignore
