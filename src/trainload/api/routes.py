from fastapi import APIRouter

from trainload.api.analytics_routes import router as analytics_router

router = APIRouter()

# Include analytics routes
router.include_router(analytics_router, prefix="/api/v1")


@router.get("/api/v1/status")
async def api_status():
    """API status endpoint."""
    return {"status": "operational", "version": "v1"}
