from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .adapters.io.environment import ServerSettings, load_settings
from .exceptions import StorageError, UploadValidationError
from .models.v1.files_models import ErrorResponse
from .startup import build_lifespan

# Routers
from .routers.upload import router as upload_router
from .routers.files import router as files_router
from .routers.health import router as health_router

logger = logging.getLogger("media_transfer")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class _SkipHealthAccessLogs(logging.Filter):
    """Hide uvicorn access logs for /health to keep liveness probes quiet."""
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except Exception:
            return True
        return "/health " not in msg


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    access_logger = logging.getLogger("uvicorn.access")
    # Avoid duplicate filters when the app is rebuilt
    if not any(isinstance(f, _SkipHealthAccessLogs) for f in access_logger.filters):
        access_logger.addFilter(_SkipHealthAccessLogs())


def _error_response(status_code: int, error: str, details: Optional[str] = None, **extra) -> JSONResponse:
    body = ErrorResponse(error=error, details=details, **extra)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(UploadValidationError)
    async def _upload_validation(request: Request, exc: UploadValidationError):
        logger.warning("Upload rejected: %s (%s)", exc.error, exc.details)
        return _error_response(exc.status_code, exc.error, exc.details, **exc.extra)

    @app.exception_handler(StorageError)
    async def _storage(request: Request, exc: StorageError):
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.error, exc.details)
        return _error_response(exc.status_code, exc.error, exc.details)

    @app.exception_handler(StarletteHTTPException)
    async def _http(request: Request, exc: StarletteHTTPException):
        response = _error_response(exc.status_code, str(exc.detail))
        if getattr(exc, "headers", None):
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(500, "Internal server error", str(exc))


def create_app(settings: Optional[ServerSettings] = None) -> FastAPI:
    settings = settings or load_settings()

    app = FastAPI(
        title="Media Transfer Server",
        version="1.0.0",
        description="Local HTTPS single-file upload service",
        lifespan=build_lifespan(settings.uploads_dir),
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Robust request logging (won't crash on exceptions)
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        t0 = time.time()
        try:
            return await call_next(request)
        except Exception as e:
            dt = (time.time() - t0) * 1000
            logger.error("%s %s -> ERR in %.1fms: %s: %s", request.method, request.url.path, dt, type(e).__name__, e)
            raise

    register_exception_handlers(app)

    app.include_router(upload_router, tags=["upload"])
    app.include_router(files_router, tags=["files"])
    app.include_router(health_router, tags=["health"])

    # Catch-all: everything under the service root is served verbatim.
    if settings.serve_static:
        app.mount("/", StaticFiles(directory=settings.service_root, html=True), name="static")

    return app
