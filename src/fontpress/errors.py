"""Exception taxonomy for the subsetting pipeline.

Every error carries an ``ErrorKind`` so the HTTP layer can map it to a
status code without knowing which stage raised it.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    FETCH_ERROR = "FETCH_ERROR"
    SUBSET_ERROR = "SUBSET_ERROR"
    PUBLISH_ERROR = "PUBLISH_ERROR"
    TIMEOUT = "TIMEOUT"
    INTERNAL = "INTERNAL"

    @property
    def status(self) -> int:
        return _STATUS[self]


_STATUS = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.FETCH_ERROR: 500,
    ErrorKind.SUBSET_ERROR: 500,
    ErrorKind.PUBLISH_ERROR: 500,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.INTERNAL: 500,
}


class FontPressError(Exception):
    """Base exception for all fontpress errors."""

    kind = ErrorKind.INTERNAL


class InvalidRequestError(FontPressError):
    """Missing or malformed request parameters."""

    kind = ErrorKind.BAD_REQUEST


class InvalidUrlError(InvalidRequestError):
    """Font source is not a well-formed absolute http(s) URL."""


class EmptyRepertoireError(InvalidRequestError):
    """No characters left to subset after resolving text and presets."""


class DownloadError(FontPressError):
    """Font download failed (bad status, transport error or timeout)."""

    kind = ErrorKind.FETCH_ERROR

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class SubsetError(FontPressError):
    """Subsetting failed: malformed font, no glyphs, or capability error."""

    kind = ErrorKind.SUBSET_ERROR


class NoOutputError(SubsetError):
    """Subsetting finished without producing an output file."""


class PublishError(FontPressError):
    """Upload to durable storage failed."""

    kind = ErrorKind.PUBLISH_ERROR


class ProcessingTimeoutError(FontPressError):
    """Subsetting did not finish within its processing timeout."""

    kind = ErrorKind.TIMEOUT


class JobTimeoutError(FontPressError):
    """The whole request exceeded its deadline."""

    kind = ErrorKind.TIMEOUT


class UploadDeniedError(FontPressError):
    """Upload token missing, expired, or not valid for this upload."""

    kind = ErrorKind.BAD_REQUEST
