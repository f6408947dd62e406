"""FastAPI startup registration.

Keep import-time side effects out of routers/modules. Any filesystem setup
or other initialization should be registered here.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


def ensure_uploads_dir(path: str) -> str:
    """Create the uploads directory (and parents) if missing."""
    os.makedirs(path, exist_ok=True)
    return path


def build_lifespan(uploads_dir: str):
    """Lifespan hook: prepare runtime directories, log shutdown."""

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        await run_in_threadpool(ensure_uploads_dir, uploads_dir)
        logger.info("Uploads directory: %s", uploads_dir)
        yield
        logger.info("Shutting down server...")

    return _lifespan
