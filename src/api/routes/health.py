"""Health check endpoints.

Provides:
- Basic health check (GET /health)
- Detailed health check with dependency status (GET /health/detailed)
"""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from src.config import Settings, get_settings

router = APIRouter()

VERSION = "0.1.0"


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response."""

    status: str
    checks: dict[str, str]
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint.

    Returns:
        Simple status indicating the API is running.
    """
    return HealthResponse(status="healthy")


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> DetailedHealthResponse:
    """Detailed health check including dependency status.

    Checks:
    - Redis connectivity (conversation history)
    - External service configuration status

    Returns:
        Status with individual component checks.
    """
    checks = {}

    # Redis check through the shared history store
    capabilities = getattr(request.app.state, "capabilities", None)
    try:
        ok = capabilities is not None and await capabilities.history.health_check()
        checks["redis"] = "ok" if ok else "error: unavailable"
    except Exception as e:
        checks["redis"] = f"error: {type(e).__name__}"

    # External services (just check if configured, don't call APIs)
    checks["groq"] = "configured" if settings.groq_api_key.get_secret_value() else "missing"
    checks["deepgram"] = (
        "configured" if settings.deepgram_api_key.get_secret_value() else "missing"
    )
    checks["elevenlabs"] = "configured" if settings.elevenlabs_api_key else "missing"
    checks["tts_provider"] = settings.tts_provider

    # Overall status
    status = "healthy" if checks["redis"] == "ok" else "degraded"

    return DetailedHealthResponse(
        status=status,
        checks=checks,
        version=VERSION,
    )
