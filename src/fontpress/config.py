"""Constants and configuration for fontpress."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace

# Network fetch defaults
DOWNLOAD_TIMEOUT = 30.0  # seconds, per attempt
DOWNLOAD_RETRIES = 2  # additional attempts after the first
RETRY_BACKOFF = 1.0  # seconds between attempts
USER_AGENT = "FontPressService/1.0"

# Processing defaults
PROCESSING_TIMEOUT = 30.0
REQUEST_DEADLINE = 60.0
MAX_CONCURRENT_JOBS = 3

# HTTP surface
MAX_BODY_SIZE = 2 * 1024 * 1024  # 2MB
MAX_UPLOAD_SIZE = 20 * 1024 * 1024
DEFAULT_PORT = 8042

# Output naming
OUTPUT_PREFIX = "compressed-"
DEFAULT_FONT_NAME = "font"
DEFAULT_EXTENSION = ".ttf"
FONT_EXTENSIONS = {".ttf", ".otf"}
OTF_EXTENSIONS = {".otf"}

CONTENT_TYPES = {
    ".ttf": "font/ttf",
    ".otf": "font/otf",
}
FALLBACK_CONTENT_TYPE = "application/octet-stream"

# Upload tokens
UPLOAD_TOKEN_TTL = 600
ALLOWED_UPLOAD_TYPES = (
    "font/ttf",
    "font/otf",
    "application/octet-stream",
    "application/vnd.ms-opentype",
)

DEFAULT_ENVIRONMENT = "development"


def environment_label(environ: Mapping[str, str] | None = None) -> str:
    """Return the deployment environment used to prefix storage paths."""
    env = os.environ if environ is None else environ
    return env.get("VERCEL_ENV") or env.get("FONTPRESS_ENV") or DEFAULT_ENVIRONMENT


def local_files_url(host: str, port: int) -> str:
    """URL prefix under which the dev server serves the local store."""
    if host in ("", "0.0.0.0", "::"):
        host = "127.0.0.1"
    elif ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}/files"


def _float_env(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    value = float(raw)
    if value <= 0:
        msg = f"{key} must be positive, got {raw!r}"
        raise ValueError(msg)
    return value


def _bool_env(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


@dataclass
class Settings:
    """Runtime settings for the service, usually read from the environment."""

    environment: str = DEFAULT_ENVIRONMENT
    download_timeout: float = DOWNLOAD_TIMEOUT
    download_retries: int = DOWNLOAD_RETRIES
    retry_backoff: float = RETRY_BACKOFF
    processing_timeout: float = PROCESSING_TIMEOUT
    request_deadline: float = REQUEST_DEADLINE
    normalize_otf: bool = True
    max_concurrent_jobs: int = MAX_CONCURRENT_JOBS
    temp_dir: str | None = None
    blob_token: str | None = None
    storage_dir: str = ".blob"
    public_base_url: str | None = None
    upload_secret: str | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def files_url(self) -> str:
        """Base URL for objects in the local store."""
        return self.public_base_url or local_files_url("127.0.0.1", DEFAULT_PORT)

    def for_server(self, host: str, port: int) -> Settings:
        """Point local-store URLs at the server bound to host:port.

        An explicit FONTPRESS_PUBLIC_URL always wins.
        """
        if self.public_base_url:
            return self
        return replace(self, public_base_url=local_files_url(host, port))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            environment=environment_label(env),
            download_timeout=_float_env(env, "FONTPRESS_DOWNLOAD_TIMEOUT", DOWNLOAD_TIMEOUT),
            processing_timeout=_float_env(
                env, "FONTPRESS_PROCESSING_TIMEOUT", PROCESSING_TIMEOUT
            ),
            request_deadline=_float_env(env, "FONTPRESS_REQUEST_DEADLINE", REQUEST_DEADLINE),
            normalize_otf=_bool_env(env, "FONTPRESS_NORMALIZE_OTF", True),
            temp_dir=env.get("FONTPRESS_TEMP_DIR") or None,
            blob_token=env.get("BLOB_READ_WRITE_TOKEN") or None,
            storage_dir=env.get("FONTPRESS_STORAGE_DIR") or ".blob",
            public_base_url=(env.get("FONTPRESS_PUBLIC_URL") or "").rstrip("/") or None,
            upload_secret=env.get("FONTPRESS_UPLOAD_SECRET") or None,
        )
