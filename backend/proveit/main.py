"""
ProveIt - Main FastAPI Application
"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from .config import settings
from .api import chat_router, fast_router, RequestRejected
from .core.logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .ratelimit import RateGovernor

# Logger will be initialized after setup_logging() is called
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    setup_logging(settings)

    if getattr(app.state, "rate_governor", None) is None:
        app.state.rate_governor = RateGovernor.from_settings(settings)
    backend = "upstash" if app.state.rate_governor.distributed else "in-memory"

    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Model: {settings.llm_model} (api key configured: {bool(settings.anthropic_api_key)})")
    logger.info(f"Rate limiter backend: {backend}")
    yield
    logger.info(f"Shutting down {settings.app_name}")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Streaming product-validation conversations and rapid idea checks",
    lifespan=lifespan
)

if settings.log_api_requests:
    app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(RequestRejected)
async def request_rejected_handler(request: Request, exc: RequestRejected):
    """Render refusals as a single human-readable error string."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
        headers=exc.headers,
    )


app.include_router(chat_router)
app.include_router(fast_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    governor = getattr(app.state, "rate_governor", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "rate_limiter": "upstash" if governor is not None and governor.distributed else "in-memory",
        "model_configured": bool(settings.anthropic_api_key),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "proveit.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
