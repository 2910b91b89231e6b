from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Request, status

from notifier.schemas.notification_schemas import (
    CreateNotificationRequest,
    NotificationListQueryParams,
    NotificationResponse,
    UpdateNotificationRequest,
)
from notifier.services.notifications.dispatch_service import (
    ALREADY_SENT,
    DISPATCH_ERROR,
    DispatchOutcome,
    NotificationDispatchService,
    get_dispatch_service,
)
from notifier.services.notifications.notification_service import (
    NotificationService,
    get_notification_service,
)
from notifier.utils.error_handlers import handle_service_error
from notifier.utils.errors import NotFoundError
from notifier.utils.responses import ResponseBuilder


notifications_router = APIRouter()


def _item(notification) -> Dict[str, Any]:
    return NotificationResponse.from_model(notification).model_dump(by_alias=True)


def _dispatch_payload(outcome: Optional[DispatchOutcome]) -> Optional[Dict[str, Any]]:
    return outcome.to_dict() if outcome is not None else None


@notifications_router.get(
    "/",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="List notifications",
    description="Paged list of notifications, newest first. Filter by status, target or a search term.",
)
async def get_notifications(
    request: Request,
    query_params: Annotated[NotificationListQueryParams, Depends()],
    notification_service: NotificationService = Depends(get_notification_service),
):
    try:
        items, total = await notification_service.get_notifications(query_params)
        return ResponseBuilder.paginated(
            request=request,
            data=items,
            page=query_params.page,
            limit=query_params.limit,
            total=total,
            message=f"Retrieved {len(items)} notification(s)",
        )
    except ValueError as e:
        return handle_service_error(request, e)


@notifications_router.post(
    "/",
    response_model=None,
    status_code=status.HTTP_201_CREATED,
    summary="Create a notification",
    description="Create a draft or scheduled notification, or send it right away with status 'sent'.",
)
async def create_notification(
    request: Request,
    notification_data: CreateNotificationRequest,
    notification_service: NotificationService = Depends(get_notification_service),
):
    try:
        notification, outcome = await notification_service.create_notification(
            notification_data
        )
    except ValueError as e:
        return handle_service_error(request, e)

    message = "Notification created successfully"
    if outcome is not None:
        message = (
            "Notification created and sent successfully"
            if outcome.sent
            else f"Notification created but sending failed: {outcome.reason}"
        )

    return ResponseBuilder.success(
        request=request,
        data=_item(notification),
        message=message,
        status_code=status.HTTP_201_CREATED,
        meta={"dispatch": _dispatch_payload(outcome)} if outcome else None,
    )


@notifications_router.get(
    "/{notification_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Get a notification",
)
async def get_notification(
    request: Request,
    notification_id: Annotated[str, Path(description="Notification ID")],
    notification_service: NotificationService = Depends(get_notification_service),
):
    try:
        notification = await notification_service.get_notification_by_id(
            notification_id
        )
        return ResponseBuilder.success(
            request=request,
            data=_item(notification),
            message="Notification retrieved successfully",
        )
    except ValueError as e:
        return handle_service_error(request, e)


@notifications_router.patch(
    "/{notification_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Update a notification",
    description="Partial update. Sent notifications can no longer be changed; status 'sent' sends it after saving.",
)
async def update_notification(
    request: Request,
    notification_data: UpdateNotificationRequest,
    notification_id: Annotated[str, Path(description="Notification ID to update")],
    notification_service: NotificationService = Depends(get_notification_service),
):
    try:
        notification, outcome = await notification_service.update_notification(
            notification_id, notification_data
        )
    except ValueError as e:
        return handle_service_error(request, e)

    message = "Notification updated successfully"
    if outcome is not None and not outcome.sent:
        message = f"Notification updated but sending failed: {outcome.reason}"
    elif outcome is not None:
        message = "Notification updated and sent successfully"

    return ResponseBuilder.success(
        request=request,
        data=_item(notification),
        message=message,
        meta={"dispatch": _dispatch_payload(outcome)} if outcome else None,
    )


@notifications_router.delete(
    "/{notification_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Delete a notification",
)
async def delete_notification(
    request: Request,
    notification_id: Annotated[str, Path(description="Notification ID to delete")],
    notification_service: NotificationService = Depends(get_notification_service),
):
    try:
        await notification_service.delete_notification(notification_id)
        return ResponseBuilder.success(
            request=request,
            data={"id": notification_id},
            message="Notification deleted successfully",
        )
    except ValueError as e:
        return handle_service_error(request, e)


@notifications_router.post(
    "/{notification_id}/send",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Send a notification now",
    description="Push the notification to its audience immediately. A notification is never sent twice.",
)
async def send_notification(
    request: Request,
    notification_id: Annotated[str, Path(description="Notification ID to send")],
    dispatcher: NotificationDispatchService = Depends(get_dispatch_service),
):
    notification = await dispatcher.get_notification(notification_id)
    if notification is None:
        raise NotFoundError("Notification not found", "NOTIFICATION_NOT_FOUND")

    outcome = await dispatcher.dispatch_or_fail(notification)

    if outcome.sent:
        return ResponseBuilder.success(
            request=request,
            data=outcome.to_dict(),
            message="Notification sent successfully",
            extra={
                "notificationId": outcome.provider_notification_id,
                "item": _item(notification),
            },
        )

    if outcome.refused:
        error_code = (
            "NOTIFICATION_ALREADY_SENT"
            if outcome.error_code == ALREADY_SENT
            else "NOTIFICATION_IN_PROGRESS"
        )
        return handle_service_error(request, ValueError(error_code))

    return ResponseBuilder.error(
        request=request,
        message="Failed to send notification",
        error_code=(
            "NOTIFICATION_SEND_FAILED"
            if outcome.error_code == DISPATCH_ERROR
            else outcome.error_code
        ),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        data=outcome.to_dict(),
        extra={"error": outcome.reason},
    )
