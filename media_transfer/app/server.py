"""HTTPS transport.

Two states: ``starting`` while the TLS key/certificate are loaded and checked,
then ``serving`` once uvicorn has bound the listener. There is no plain-HTTP
fallback; bad TLS material ends the process before any socket is opened.
"""

from __future__ import annotations

import logging
import ssl
import sys

import uvicorn

from .adapters.io.environment import ServerSettings
from .exceptions import StartupFatalError
from .main import create_app
from .startup import ensure_uploads_dir

logger = logging.getLogger(__name__)

TLS_HINT = "Make sure public.crt and private.key files exist in the service directory"


def _read_pem(path: str, label: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return fh.read()
    except OSError as exc:
        raise StartupFatalError(f"Could not read TLS {label} at {path}: {exc}") from exc


def load_tls_material(key_path: str, cert_path: str) -> ssl.SSLContext:
    """Read and validate the key/certificate pair.

    Raises:
        StartupFatalError: either file is missing, unreadable or not a
            matching PEM key/certificate pair.
    """
    _read_pem(key_path, "private key")
    _read_pem(cert_path, "certificate")
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    try:
        context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    except (ssl.SSLError, OSError) as exc:
        raise StartupFatalError(f"Invalid TLS key/certificate pair: {exc}") from exc
    return context


def serve(settings: ServerSettings, *, log_level: str = "info") -> None:
    """Run the HTTPS server until interrupted; exit(1) on bad TLS material."""
    try:
        load_tls_material(settings.tls_key_path, settings.tls_cert_path)
    except StartupFatalError as exc:
        logger.error("Error starting HTTPS server: %s", exc)
        logger.error(TLS_HINT)
        sys.exit(1)

    ensure_uploads_dir(settings.uploads_dir)
    app = create_app(settings)

    logger.info("HTTPS Server running at https://localhost:%d", settings.port)
    # uvicorn handles SIGINT/SIGTERM: stop accepting, let in-flight requests finish.
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        ssl_keyfile=settings.tls_key_path,
        ssl_certfile=settings.tls_cert_path,
        log_level=log_level,
        log_config=None,
    )
