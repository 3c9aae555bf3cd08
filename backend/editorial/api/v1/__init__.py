"""
Version 1 routes: manuscripts, reviews, issues, DOI deposits and notifications.
"""
from fastapi import APIRouter
from ..manuscripts import router as manuscripts_router
from ..reviews import router as reviews_router
from ..issues import router as issues_router
from ..doi import router as doi_router
from ..notifications import router as notifications_router

API_VERSION = "v1"

api_router = APIRouter()
for router in (manuscripts_router, reviews_router, issues_router, doi_router, notifications_router):
    api_router.include_router(router)


@api_router.get("/health", tags=["Health Check"], summary="Liveness of the v1 routes")
async def health_check_v1():
    return {
        "status": "healthy",
        "api_version": API_VERSION,
        "routes": len(api_router.routes),
    }

__all__ = ["api_router"]
