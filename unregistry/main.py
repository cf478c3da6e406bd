"""
Unregistry server.

create_app() wires settings, the object store, the token gate and the
routers together. Tests build their own app with a temporary data
directory; the module-level `app` is the one uvicorn serves.

Run it with:
    unregistry-server                       # binds LISTEN_ADDR
    uvicorn unregistry.main:app --reload    # local development
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

from .api.dependencies import verify_bearer_token
from .api.routes import files, health, images
from .config.settings import Settings, get_settings
from .infrastructure.storage.client import create_object_store

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application for the given settings (environment by default).

    Production calls this once; tests call it per test with a
    settings object pointing at a temporary data directory.
    """
    if settings is None:
        settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Build the object store on startup.

        The store creates its namespace directories exactly once here,
        then is shared by every request through app.state.
        """
        logger.info(
            "Unregistry API starting",
            extra={
                "version": settings.api_version,
                "data_path": str(settings.data_path),
                "mock_mode": settings.storage_mock_mode,
            }
        )

        if settings.uses_default_token:
            logger.warning("Using default token. Set TOKEN environment variable for production.")

        app.state.object_store = create_object_store(
            root=settings.data_path,
            mock_mode=settings.storage_mock_mode,
            copy_chunk_size=settings.upload_chunk_size,
        )

        yield

        logger.info("Unregistry API shutting down")

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Private storage for files and Docker image archives.

        ## Authentication

        Every `/api` endpoint requires an `Authorization: Bearer <token>` header.
        `/health` is open.

        ## Namespaces

        - **Files** (`/api/file`): named blobs stored as-is
        - **Images** (`/api/img`): gzipped `docker save` archives, addressed without `.tar.gz`
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Tests and embedded servers pass their own settings
    app.dependency_overrides[get_settings] = lambda: settings

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        files.router,
        prefix="/api/file",
        tags=["Files"],
        dependencies=[Depends(verify_bearer_token)],
    )

    app.include_router(
        images.router,
        prefix="/api/img",
        tags=["Images"],
        dependencies=[Depends(verify_bearer_token)],
    )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Turn anything unhandled into a bare 500.

        Prevents stack traces and filesystem paths from leaking to clients.
        The full error is only logged, never returned.
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
            content={"detail": "Internal server error"}
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


def run() -> None:
    """Serve the application with uvicorn on LISTEN_ADDR."""
    import uvicorn

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    uvicorn.run(
        create_app(settings),
        host=settings.listen_host,
        port=settings.listen_port,
        log_level=settings.log_level.lower(),
    )


# Served by uvicorn
app = create_app()


if __name__ == "__main__":
    run()
