from celery.schedules import crontab
from .settings import settings

# Basic Celery Configuration
broker_url = f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"
result_backend = f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"

# Task Discovery
include = ["notifier.tasks"]

# Timezone Configuration
timezone = "UTC"
enable_utc = True

# Task Result Configuration
result_expires = 3600

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
task_track_started = True
task_time_limit = 10 * 60  # 10 minutes
task_soft_time_limit = 9 * 60  # 9 minutes

# Worker Configuration
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# A tick that is still running when the next one is due must not be re-delivered
task_acks_late = False
task_default_retry_delay = 30
task_max_retries = 0

beat_schedule = (
    {
        # Every minute, matching the embedded scheduler's interval
        "scheduled-notification-dispatcher": {
            "task": "notifier.tasks.cron.scheduled_notification_dispatcher.scheduled_notification_dispatcher_task",
            "schedule": crontab(),
            "args": ("scheduled_notification_dispatcher_cron",),
            "options": {"expires": 55},
        },
    }
    if settings.SCHEDULER_MODE == "celery"
    else {}
)

# Default Queue
task_default_queue = "notifier"

# Beat Scheduler Configuration
beat_schedule_filename = "tmp/celerybeat-schedule"
