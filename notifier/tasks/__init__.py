from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "scheduled_notification_dispatcher_task",
]
