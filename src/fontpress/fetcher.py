"""Download a remote font into a fresh per-job temporary directory."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import shutil
from pathlib import Path, PurePosixPath
from urllib.error import HTTPError, URLError
from urllib.parse import unquote, urlsplit
from urllib.request import Request, urlopen

from fontpress.config import (
    DEFAULT_EXTENSION,
    DEFAULT_FONT_NAME,
    DOWNLOAD_TIMEOUT,
    USER_AGENT,
)
from fontpress.errors import DownloadError, InvalidUrlError
from fontpress.retry import RetryPolicy
from fontpress.tempfiles import PathOwner, make_temp_dir, remove_path
from fontpress.workers import offload

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("http", "https")
CHUNK_SIZE = 64 * 1024

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")
_FONT_SUFFIX = re.compile(r"\.(otf|ttf)$", re.IGNORECASE)


def validate_url(url: object) -> str:
    """Return ``url`` if it is an absolute http(s) URL, else raise InvalidUrlError."""
    if not isinstance(url, str) or not url.strip():
        raise InvalidUrlError("Font URL is missing")
    try:
        parts = urlsplit(url.strip())
    except ValueError as e:
        msg = f"Invalid font URL: {e}"
        raise InvalidUrlError(msg) from e
    if not parts.scheme or not parts.netloc:
        msg = f"Font URL must be absolute: {url!r}"
        raise InvalidUrlError(msg)
    if parts.scheme.lower() not in SUPPORTED_SCHEMES:
        msg = f"Unsupported URL scheme '{parts.scheme}', expected http or https"
        raise InvalidUrlError(msg)
    return url.strip()


def derive_file_name(url: str) -> str:
    """Derive a safe local file name from the URL path.

    "https://cdn.example/fonts/My%20Font.otf" -> "My_Font.otf"
    "https://cdn.example/"                     -> "font.ttf"
    """
    try:
        path = unquote(urlsplit(url).path)
    except ValueError:
        path = ""

    name = PurePosixPath(path).name
    if name in ("", ".", ".."):
        name = DEFAULT_FONT_NAME

    name = _UNSAFE_CHARS.sub("_", name)
    if not _FONT_SUFFIX.search(name):
        name += DEFAULT_EXTENSION
    return name


def _download_to(url: str, dest: Path, timeout: float) -> int:
    """Stream ``url`` into ``dest``. Returns the number of bytes written."""
    req = Request(url, headers={"User-Agent": USER_AGENT, "Accept": "*/*"})
    try:
        with urlopen(req, timeout=timeout) as resp:  # noqa: S310
            status = getattr(resp, "status", 200)
            if status < 200 or status >= 300:
                msg = f"Download failed with status {status}"
                raise DownloadError(msg, status=status)
            with open(dest, "wb") as f:
                shutil.copyfileobj(resp, f, CHUNK_SIZE)
    except HTTPError as e:
        e.close()
        msg = f"Download failed with status {e.code}"
        raise DownloadError(msg, status=e.code) from e
    except URLError as e:
        msg = f"Download failed: {e.reason}"
        raise DownloadError(msg) from e
    except OSError as e:
        msg = f"Download failed: {e}"
        raise DownloadError(msg) from e
    return dest.stat().st_size


class FontFetcher:
    """Fetch a font over HTTP(S) with a per-attempt timeout and bounded retries."""

    def __init__(
        self,
        *,
        timeout: float = DOWNLOAD_TIMEOUT,
        retry: RetryPolicy | None = None,
        temp_dir: str | None = None,
    ):
        self.timeout = timeout
        self.retry = retry or RetryPolicy(retry_on=(DownloadError,))
        self.temp_dir = temp_dir

    async def fetch(self, url: str, owner: PathOwner | None = None) -> Path:
        """Download ``url`` and return the local path.

        The input directory is handed to ``owner`` as soon as it exists. Without
        an owner the directory is removed here if the download fails.
        """
        url = validate_url(url)
        file_name = derive_file_name(url)
        input_dir = make_temp_dir("font-download-", self.temp_dir, owner)
        dest = input_dir / file_name
        logger.info("Downloading %s -> %s", url[:100], dest)

        try:
            return await self._fetch_with_retry(url, dest)
        except BaseException:
            if owner is None:
                remove_path(input_dir)
            raise

    async def _fetch_with_retry(self, url: str, dest: Path) -> Path:
        attempt = 0
        while True:
            attempt += 1
            # Each attempt writes its own part file; an attempt abandoned on
            # timeout may keep writing after we move on.
            part = dest.with_name(f"{dest.name}.part{attempt}")
            try:
                size = await asyncio.wait_for(
                    offload(_download_to, url, part, self.timeout), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                error = DownloadError(f"Download timed out after {self.timeout:g}s")
            except DownloadError as e:
                error = e
            else:
                os.replace(part, dest)
                logger.info("Downloaded %d bytes to %s", size, dest)
                return dest

            with contextlib.suppress(OSError):
                os.unlink(part)

            if not self.retry.should_retry(error, attempt):
                logger.error("Download failed after %d attempt(s): %s", attempt, error)
                raise error

            delay = self.retry.delay(attempt)
            logger.warning(
                "Download attempt %d/%d failed: %s (retrying in %.1fs)",
                attempt,
                self.retry.max_attempts,
                error,
                delay,
            )
            await asyncio.sleep(delay)
