from fastapi import APIRouter

from .notifications import notifications_router
from .scheduler import scheduler_router

admin_router = APIRouter()

# Include sub-routers
admin_router.include_router(
    notifications_router, prefix="/notifications", tags=["Admin - Notifications"]
)
admin_router.include_router(
    scheduler_router, prefix="/scheduler", tags=["Admin - Scheduler"]
)
