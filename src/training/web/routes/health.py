"""Health check endpoint."""

from fastapi import APIRouter

from training import __version__
from training.web.schemas import HealthResponse
from training.web.sessions import get_session_manager

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check API health status."""
    active = await get_session_manager().list_active()
    return HealthResponse(status="ok", version=__version__, live_sessions=len(active))
