"""
FastAPI Application Entry Point

Integrates:
  - Streaming relay endpoints (/api/streaming, /api/streaming-edge)
  - Health checks
  - Middleware for logging & error handling

Run: uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api import streaming_router
from config import Config
from infra import RelayBootstrap, get_config

# Setup logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan: startup and shutdown handlers.
    """
    # Startup
    bootstrap = RelayBootstrap.get_instance()
    config = get_config()
    logger.info("=" * 60)
    logger.info("Stream relay starting up...")
    logger.info(f"Environment: {Config.ENVIRONMENT}")
    logger.info(f"Upstream: {config.upstream_backend} ({config.upstream_url})")
    logger.info(f"Upstream API key configured: {bool(config.api_key)}")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("Stream relay shutting down...")
    await bootstrap.shutdown()


# Create FastAPI app
app = FastAPI(
    title="Stream Relay API",
    description="Streams chat completions from an upstream inference API",
    version="1.0.0",
    lifespan=lifespan,
)


# Middleware for logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    logger.debug(f"{request.method} {request.url.path}")
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"Request error: {str(e)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "message": str(e)},
        )


# Include routers
app.include_router(streaming_router)


# Health check endpoints
@app.get("/health/live")
async def health_live():
    """Live health check (Kubernetes liveness probe)."""
    return {"status": "alive"}


@app.get("/health/ready")
async def health_ready():
    """Readiness health check: an upstream credential (or the stub) is configured."""
    if Config.validate():
        return {"status": "ready"}
    return JSONResponse(
        status_code=503,
        content={"status": "not_ready", "reason": "FIREWORKS_API_KEY not configured"},
    )


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Stream Relay API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "streaming": "POST /api/streaming",
            "streaming_edge": "POST /api/streaming-edge",
            "health_live": "GET /health/live",
            "health_ready": "GET /health/ready",
            "config_info": "GET /config/info",
        },
    }


@app.get("/config/info")
async def config_info():
    """Get non-sensitive configuration info."""
    config = get_config()
    return {
        "environment": Config.ENVIRONMENT,
        "upstream_backend": config.upstream_backend,
        "api_key_configured": bool(config.api_key),
        "active_sessions": RelayBootstrap.get_instance().active_sessions,
        "profiles": {
            profile.name: {
                "max_tokens": profile.provider_max_tokens,
                "budget_s": profile.budget_s,
                "mode": profile.mode,
            }
            for profile in (config.proxy, config.edge)
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("RELAY_HOST", "0.0.0.0"),
        port=Config.RELAY_PORT,
        reload=Config.ENVIRONMENT == "development",
    )
