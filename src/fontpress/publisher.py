"""Name, upload and describe the subsetted font."""

from __future__ import annotations

import logging
import re
import secrets
import string
import time
from dataclasses import dataclass

from fontpress.config import (
    CONTENT_TYPES,
    DEFAULT_ENVIRONMENT,
    DEFAULT_EXTENSION,
    FALLBACK_CONTENT_TYPE,
    OUTPUT_PREFIX,
)
from fontpress.engine import SubsetResult
from fontpress.errors import PublishError
from fontpress.storage import BlobStore, StorageError
from fontpress.workers import offload

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")
_FONT_SUFFIX = re.compile(r"\.(ttf|otf)$", re.IGNORECASE)
_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


def random_token(length: int = 6) -> str:
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def generate_safe_name(original_name: str, extension: str = DEFAULT_EXTENSION) -> str:
    """Sanitize a file name and append a timestamp and random token.

    "My Font.otf" -> "My_Font_1718000000000_k3x9qa.otf"
    """
    safe = _UNSAFE_CHARS.sub("_", original_name)
    match = _FONT_SUFFIX.search(safe)
    suffix = match.group(0) if match else extension
    base = safe[: match.start()] if match else safe
    timestamp = int(time.time() * 1000)
    return f"{base}_{timestamp}_{random_token()}{suffix}"


def content_type_for(extension: str) -> str:
    return CONTENT_TYPES.get(extension.lower(), FALLBACK_CONTENT_TYPE)


@dataclass(frozen=True)
class PublishedArtifact:
    url: str
    name: str
    storage_path: str
    size: int


class ResultPublisher:
    """Uploads subset output under ``<environment>/compressed/<safe name>``."""

    def __init__(self, store: BlobStore, *, environment: str = DEFAULT_ENVIRONMENT):
        self.store = store
        self.environment = environment or DEFAULT_ENVIRONMENT

    def output_name(self, result: SubsetResult, original_base_name: str) -> str:
        return generate_safe_name(f"{OUTPUT_PREFIX}{original_base_name}{result.extension}")

    async def publish(self, result: SubsetResult, original_base_name: str) -> PublishedArtifact:
        name = self.output_name(result, original_base_name)
        storage_path = f"{self.environment}/compressed/{name}"
        content_type = content_type_for(result.extension)
        logger.info("Uploading %d bytes to %s (%s)", result.size, storage_path, content_type)

        try:
            blob = await offload(
                self.store.put,
                storage_path,
                result.data,
                content_type=content_type,
                access="public",
            )
        except StorageError as e:
            msg = f"Upload failed: {e}"
            raise PublishError(msg) from e

        logger.info("Published %s -> %s", name, blob.url)
        return PublishedArtifact(
            url=blob.url, name=name, storage_path=blob.pathname, size=result.size
        )
