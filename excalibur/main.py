"""
Excalibur Store API server.

create_app() builds a fresh application each call, so tests can attach
their own dependency overrides.

Run locally (set STORAGE_MOCK_MODE=true to skip GitHub):
    uvicorn excalibur.main:app --reload

Behind a process manager:
    gunicorn excalibur.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.dependencies import close_file_client
from .api.routes import assets, health
from .config.settings import describe_mock_modes, get_settings

# Log level comes from LOG_LEVEL
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Validates configuration on startup and closes the shared storage
    client on shutdown.
    """
    settings = get_settings()

    logger.info(
        "Excalibur Store API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": describe_mock_modes(settings),
            "registry_path": settings.registry_path,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    await close_file_client()
    logger.info("Excalibur Store API shutting down")


def create_app() -> FastAPI:
    """
    Build the API: middleware, routers, root endpoint and the
    catch-all error handler.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Community marketplace for Roblox assets.

        The registry of assets lives in a GitHub repository as a single
        JSON document; artifacts live next to it, one folder per asset.

        ## Authentication

        All endpoints require an API key in the `X-API-Key` header.
        Endpoints acting on behalf of a user also need `X-User-Id`
        (and optionally `X-User-Name`, `X-User-Avatar`).

        ## Workflow

        1. **Upload**: `POST /api/v1/assets` (multipart: file, thumbnail, video)
        2. **Browse**: `GET /api/v1/assets?q=sword`
        3. **Engage**: `POST /api/v1/assets/{id}/like`, `/download`, `/report`, `/comments`
        4. **Remove**: `DELETE /api/v1/assets/{id}`
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        assets.router,
        prefix="/api/v1/assets",
        tags=["Assets"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - points at the docs."""
        return {
            "message": "Excalibur Store API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Log unexpected errors with their traceback and answer with a
        generic 500. Engine errors never get here; routes map them.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Import target for uvicorn and gunicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "excalibur.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
