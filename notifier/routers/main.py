from fastapi import APIRouter

from notifier.routers.admin import admin_router
from notifier.routers.shared import shared_router

main_router = APIRouter()

# Include domain-based routers
main_router.include_router(admin_router, prefix="/admin", tags=["Admin"])
main_router.include_router(shared_router, tags=["Shared Services"])
