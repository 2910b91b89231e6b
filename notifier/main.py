from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notifier.config.settings import settings
from notifier.db.db import create_tables
from notifier.utils.logging import get_logger
from notifier.routers import main_router
from notifier.services.notifications.scheduler_service import NotificationScheduler
from notifier.utils.errors import setup_error_handlers
from notifier.middlewares import RequestIDMiddleware

# Initialize the logger
logger = get_logger()


@asynccontextmanager
async def lifespan(application: FastAPI):
    logger.info(f"{settings.NAME} is starting up...")

    if settings.AUTO_CREATE_TABLES:
        create_tables()

    scheduler = None
    if settings.SCHEDULER_MODE == "embedded":
        scheduler = NotificationScheduler.from_settings()
        await scheduler.start()
    else:
        logger.info(f"Embedded scheduler not started (mode: {settings.SCHEDULER_MODE})")
    application.state.notification_scheduler = scheduler

    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.shutdown()
        application.state.notification_scheduler = None
        logger.info(f"{settings.NAME} is shutting down...")


def create_application() -> FastAPI:
    """Initialize the FastAPI application with settings and lifespan events."""
    application = FastAPI(
        title=settings.NAME, version=settings.VERSION, lifespan=lifespan
    )
    application.state.notification_scheduler = None

    # Setup error handlers
    setup_error_handlers(application)

    # Add CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    # Add custom middlewares
    application.add_middleware(RequestIDMiddleware)

    # Routers
    application.include_router(main_router, prefix=settings.API_PREFIX, tags=["APIs"])

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "notifier.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_config=None,
        log_level=None,
    )
