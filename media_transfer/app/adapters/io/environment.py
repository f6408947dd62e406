"""Environment-driven settings and filesystem roots for the server."""

from __future__ import annotations

import os
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

MiB = 1024 * 1024

DEFAULT_PORT = 3443
DEFAULT_MAX_FILE_SIZE = 10_000 * MiB  # 10GB
DEFAULT_MAX_FIELD_SIZE = 50 * MiB


class ServerSettings(BaseModel):
    """Resolved runtime configuration.

    Relative ``uploads_dir`` / TLS paths are interpreted against
    ``service_root``; after validation every path is absolute.
    """

    service_root: str = Field(default_factory=os.getcwd)
    host: str = "0.0.0.0"
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    uploads_dir: str = "uploads"
    tls_key_path: str = "private.key"
    tls_cert_path: str = "public.crt"
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0)
    max_field_size: int = Field(default=DEFAULT_MAX_FIELD_SIZE, gt=0)
    serve_static: bool = True
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @model_validator(mode="after")
    def _resolve_paths(self) -> "ServerSettings":
        root = os.path.abspath(self.service_root)
        self.service_root = root
        self.uploads_dir = os.path.abspath(os.path.join(root, self.uploads_dir))
        self.tls_key_path = os.path.abspath(os.path.join(root, self.tls_key_path))
        self.tls_cert_path = os.path.abspath(os.path.join(root, self.tls_cert_path))
        return self


def _env_mib(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return int(float(raw) * MiB)


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings(**overrides) -> ServerSettings:
    """Build settings from the environment; keyword overrides win.

    ``None`` overrides are ignored so CLI defaults do not mask env values.
    """
    values = {
        "service_root": os.getenv("MEDIA_TRANSFER_ROOT"),
        "host": os.getenv("MEDIA_TRANSFER_HOST"),
        "port": os.getenv("MEDIA_TRANSFER_PORT"),
        "uploads_dir": os.getenv("UPLOAD_DIR"),
        "tls_key_path": os.getenv("TLS_KEY_PATH"),
        "tls_cert_path": os.getenv("TLS_CERT_PATH"),
        "max_file_size": _env_mib("MAX_FILE_SIZE_MB"),
        "max_field_size": _env_mib("MAX_FIELD_SIZE_MB"),
        "serve_static": _env_flag("SERVE_STATIC"),
    }
    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
    if origins:
        values["cors_origins"] = origins

    values.update(overrides)
    return ServerSettings(**{k: v for k, v in values.items() if v is not None})
