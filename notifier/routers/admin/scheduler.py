import uuid
from typing import Optional

from fastapi import APIRouter, Request, status

from notifier.config.settings import settings
from notifier.services.notifications.scheduler_service import (
    NotificationScheduler,
    ScheduledNotificationPoller,
)
from notifier.utils.errors import BusinessLogicError
from notifier.utils.responses import ResponseBuilder

scheduler_router = APIRouter()


def _get_scheduler(request: Request) -> Optional[NotificationScheduler]:
    return getattr(request.app.state, "notification_scheduler", None)


@scheduler_router.post(
    "/run",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Run one scheduler tick now",
    description="Send every scheduled notification that is due and return the tick summary.",
)
async def run_scheduler_tick(request: Request):
    if settings.SCHEDULER_MODE == "disabled":
        raise BusinessLogicError(
            message="Scheduled dispatch is disabled", error_code="SCHEDULER_DISABLED"
        )

    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    scheduler = _get_scheduler(request)
    if scheduler is not None:
        summary = await scheduler.trigger(request_id)
    else:
        # Celery mode: beat owns the timer, run a single pass in-process
        summary = await ScheduledNotificationPoller().run_tick(request_id)

    return ResponseBuilder.success(
        request=request,
        data=summary.to_dict(),
        message=(
            f"Processed {summary.found} scheduled notification(s): "
            f"{summary.sent} sent, {summary.failed} failed, {summary.skipped} skipped"
        ),
    )


@scheduler_router.get(
    "/status",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Scheduler status",
)
async def get_scheduler_status(request: Request):
    scheduler = _get_scheduler(request)
    data = {"mode": settings.SCHEDULER_MODE}
    if scheduler is not None:
        data.update(scheduler.status())
    else:
        data["running"] = False

    return ResponseBuilder.success(
        request=request, data=data, message="Scheduler status retrieved"
    )
