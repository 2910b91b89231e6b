from fastapi import Request, status

from notifier.utils.responses import ResponseBuilder

# Error code -> (HTTP status, user-facing message)
SERVICE_ERRORS = {
    "NOTIFICATION_NOT_FOUND": (
        status.HTTP_404_NOT_FOUND,
        "Notification not found",
    ),
    "NOTIFICATION_ALREADY_SENT": (
        status.HTTP_400_BAD_REQUEST,
        "Notification has already been sent and can no longer be changed",
    ),
    "NOTIFICATION_IN_PROGRESS": (
        status.HTTP_409_CONFLICT,
        "Notification is currently being sent",
    ),
    "NOTIFICATIONS_RETRIEVAL_FAILED": (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Failed to retrieve notifications",
    ),
}


def handle_service_error(request: Request, error: Exception):
    """Centralized service error handler for the admin routers"""
    error_message = str(error)

    # Format: "ERROR_CODE" or "ERROR_CODE: detail"
    if ":" in error_message:
        error_code, detail = (part.strip() for part in error_message.split(":", 1))
    else:
        error_code, detail = error_message, None

    status_code, message = SERVICE_ERRORS.get(
        error_code,
        (status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred"),
    )
    if detail:
        message = f"{message}: {detail}"

    return ResponseBuilder.error(
        request=request,
        message=message,
        error_code=error_code if error_code in SERVICE_ERRORS else "INTERNAL_ERROR",
        status_code=status_code,
    )
