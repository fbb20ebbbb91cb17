"""FastAPI application entry point.

Voicebridge - real-time voice conversation bridge (STT → LLM → TTS).

Run with:
    uvicorn --factory src.main:create_app --port 3001
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import health, metrics
from src.api.websocket.realtime import realtime_endpoint
from src.config import Settings, get_settings
from src.core.capabilities import Capabilities
from src.logging_config import setup_logging


def create_app(
    settings: Settings | None = None,
    capabilities: Capabilities | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings; loaded from the environment when omitted.
        capabilities: Pre-built external clients. Built from settings at
            startup when omitted.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler.

        Startup:
        - Initialize logging
        - Construct shared capability clients

        Shutdown:
        - Close capability clients
        """
        setup_logging(
            level=settings.log_level,
            enable_file=settings.is_production,
        )

        app.state.capabilities = capabilities or Capabilities.from_settings(settings)

        yield

        await app.state.capabilities.close()

    app = FastAPI(
        title="Voicebridge API",
        description="Real-time voice conversation bridge",
        version=health.VERSION,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check routes
    app.include_router(health.router, tags=["Health"])

    # Metrics endpoint for Prometheus scraping
    app.include_router(metrics.router, tags=["Observability"])

    # WebSocket endpoint for voice sessions
    @app.websocket("/ws")
    async def voice_ws(websocket: WebSocket):
        """WebSocket endpoint for browser voice sessions."""
        await realtime_endpoint(websocket, websocket.app.state.capabilities, settings=settings)

    return app
