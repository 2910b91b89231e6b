from fastapi import APIRouter, Request

from notifier.config.settings import settings
from notifier.utils.responses import ResponseBuilder

health_router = APIRouter()


@health_router.get("/")
async def health_check(request: Request):
    """
    Basic health check endpoint

    Returns application status, version and how scheduled dispatch runs
    """
    return ResponseBuilder.success(
        request=request,
        data={
            "status": "healthy",
            "service": settings.NAME,
            "version": settings.VERSION,
            "schedulerMode": settings.SCHEDULER_MODE,
        },
        message="Service is running",
    )
