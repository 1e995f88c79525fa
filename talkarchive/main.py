"""
Main FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from talkarchive import __version__
from talkarchive.core.config import settings
from talkarchive.core.exceptions import ProviderUnavailable
from talkarchive.core.logging import get_logger, setup_logging
from talkarchive.db.session import check_db_health, init_db
from talkarchive.services.container import build_services

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events.

    Builds the engine, loads the embedding model and wires every service
    once; routes reach them through ``app.state.services``.
    """
    # Startup
    logger.info(
        "starting_application",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        version=__version__,
    )

    # The API only reads; enrichment runs in workers
    services = await build_services(enable_llm=False)
    await init_db(services.engine)
    app.state.services = services
    logger.info("services_ready", embedding_model=services.embedder.model_name)

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await services.close()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Searchable archive of YouTube talk transcripts",
    version=__version__,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check(request: Request) -> JSONResponse:
    """
    Health check endpoint for monitoring.
    Includes database connectivity and embedding model status.
    """
    services = getattr(request.app.state, "services", None)
    db_healthy = services is not None and await check_db_health(services.engine)
    model_loaded = services is not None and services.embedder.is_initialized

    return JSONResponse(
        status_code=200 if db_healthy else 503,
        content={
            "status": "healthy" if db_healthy else "unhealthy",
            "app_name": settings.APP_NAME,
            "environment": settings.APP_ENV,
            "version": __version__,
            "database": "connected" if db_healthy else "disconnected",
            "embedding_model": "loaded" if model_loaded else "not_loaded",
        }
    )


@app.get("/", tags=["root"])
async def root() -> JSONResponse:
    """
    Root endpoint.
    """
    return JSONResponse(
        content={
            "message": f"Welcome to {settings.APP_NAME} API",
            "version": __version__,
            "docs": "/docs" if settings.DEBUG else "Documentation disabled in production",
        }
    )


# Include API routers
from talkarchive.api import api_router  # noqa: E402
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.exception_handler(ProviderUnavailable)
async def provider_unavailable_handler(request, exc: ProviderUnavailable) -> JSONResponse:
    logger.warning("provider_unavailable", provider=exc.provider, error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=503,
        content={"error": {"code": "provider_unavailable", "message": str(exc)}},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled errors.
    """
    logger.error(
        "unhandled_exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "talkarchive.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
