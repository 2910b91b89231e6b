from .scheduled_notification_dispatcher import scheduled_notification_dispatcher_task

__all__ = [
    "scheduled_notification_dispatcher_task",
]
