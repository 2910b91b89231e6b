from .recipient_resolver import RecipientResolutionError, RecipientResolver
from .dispatch_service import (
    DispatchOutcome,
    DispatchResult,
    NotificationDispatchService,
)
from .scheduler_service import (
    NotificationScheduler,
    ScheduledNotificationPoller,
    TickSummary,
)
from .notification_service import NotificationService

__all__ = [
    "RecipientResolutionError",
    "RecipientResolver",
    "DispatchOutcome",
    "DispatchResult",
    "NotificationDispatchService",
    "NotificationScheduler",
    "ScheduledNotificationPoller",
    "TickSummary",
    "NotificationService",
]
