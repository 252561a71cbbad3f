"""Durable object storage backends for published fonts and uploads."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

logger = logging.getLogger(__name__)

VERCEL_BLOB_API = "https://blob.vercel-storage.com"
VERCEL_BLOB_API_VERSION = "7"


class StorageError(Exception):
    """The storage backend rejected or failed a write."""


@dataclass(frozen=True)
class StoredBlob:
    url: str
    pathname: str
    size: int


class BlobStore(Protocol):
    def put(
        self, pathname: str, data: bytes, *, content_type: str, access: str = "public"
    ) -> StoredBlob: ...


def _clean_pathname(pathname: str) -> str:
    """Reject absolute paths and '..' segments; return a normalized relative path."""
    parts = PurePosixPath(pathname.strip("/")).parts
    if not parts or any(p in ("..", ".") for p in parts):
        msg = f"Invalid storage path: {pathname!r}"
        raise StorageError(msg)
    return "/".join(parts)


class VercelBlobStore:
    """Vercel Blob REST API client (PUT with a read-write token)."""

    def __init__(self, token: str, *, api_url: str = VERCEL_BLOB_API, timeout: float = 30.0):
        if not token:
            raise ValueError("Vercel Blob token is required")
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def put(
        self, pathname: str, data: bytes, *, content_type: str, access: str = "public"
    ) -> StoredBlob:
        pathname = _clean_pathname(pathname)
        req = Request(f"{self.api_url}/{quote(pathname)}", data=data, method="PUT")
        req.add_header("Authorization", f"Bearer {self.token}")
        req.add_header("x-api-version", VERCEL_BLOB_API_VERSION)
        req.add_header("x-content-type", content_type)
        req.add_header("x-add-random-suffix", "1")
        req.add_header("x-access", access)
        try:
            with urlopen(req, timeout=self.timeout) as resp:  # noqa: S310
                body = json.loads(resp.read())
        except HTTPError as e:
            e.close()
            msg = f"Blob upload rejected with status {e.code}"
            raise StorageError(msg) from e
        except (URLError, OSError, json.JSONDecodeError) as e:
            msg = f"Blob upload failed: {e}"
            raise StorageError(msg) from e

        url = body.get("url")
        if not url:
            raise StorageError("Blob upload response has no url")
        return StoredBlob(url=url, pathname=body.get("pathname", pathname), size=len(data))


class LocalBlobStore:
    """Directory-backed store for development; objects are served under ``base_url``."""

    def __init__(self, root: str | Path, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def path_for(self, pathname: str) -> Path:
        return self.root / _clean_pathname(pathname)

    def put(
        self, pathname: str, data: bytes, *, content_type: str, access: str = "public"
    ) -> StoredBlob:
        pathname = _clean_pathname(pathname)
        target = self.root / pathname
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=target.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_path, target)
            except OSError:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            msg = f"Local store write failed for {pathname}: {e}"
            raise StorageError(msg) from e
        logger.debug("Stored %d bytes at %s (%s)", len(data), target, content_type)
        url = f"{self.base_url}/{quote(pathname)}"
        return StoredBlob(url=url, pathname=pathname, size=len(data))

    def read(self, pathname: str) -> bytes:
        return self.path_for(pathname).read_bytes()
