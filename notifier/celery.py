from celery import Celery

# Create Celery app
celery = Celery("notifier")

# Load configuration from notifier.config.celeryconfig module
celery.config_from_object("notifier.config.celeryconfig")
