"""
Health Check Routes
Service liveness and preference session statistics
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from prefsync import __version__
from prefsync.preferences import PreferenceService

router = APIRouter()


def get_preference_service(request: Request) -> PreferenceService:
    """Dependency to get preference service from app state"""
    return request.app.state.preference_service


@router.get("/health")
async def health_check(
    request: Request,
    service: PreferenceService = Depends(get_preference_service)
) -> JSONResponse:
    """Basic health check endpoint"""
    settings = request.app.state.settings

    response_data = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.service_name,
        "version": __version__,
        "environment": settings.environment.value,
        "preferences": service.get_service_health(),
    }
    return JSONResponse(content=response_data, status_code=200)
