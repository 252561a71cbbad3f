"""Signed upload tokens for original-font uploads.

The server decides where an upload lands: a token pins the storage path
(``<env>/original/<safe name>``), the allowed MIME types and an expiry.
Tokens are HS256 JWTs signed with the service's upload secret.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

import jwt

from fontpress.config import ALLOWED_UPLOAD_TYPES, DEFAULT_ENVIRONMENT, UPLOAD_TOKEN_TTL
from fontpress.errors import UploadDeniedError
from fontpress.publisher import generate_safe_name

logger = logging.getLogger(__name__)

TOKEN_AUDIENCE = "fontpress-upload"
ALGORITHM = "HS256"


@dataclass(frozen=True)
class UploadGrant:
    token: str
    pathname: str
    allowed_content_types: tuple[str, ...]
    expires_at: int


class UploadTokenIssuer:
    def __init__(
        self,
        secret: str,
        *,
        environment: str = DEFAULT_ENVIRONMENT,
        ttl: int = UPLOAD_TOKEN_TTL,
        allowed_content_types: tuple[str, ...] = ALLOWED_UPLOAD_TYPES,
    ):
        if not secret:
            raise ValueError("Upload secret is required")
        self._secret = secret
        self.environment = environment
        self.ttl = ttl
        self.allowed_content_types = allowed_content_types

    def issue(self, requested_path: str) -> UploadGrant:
        """Grant an upload for ``requested_path``; only its last segment is kept."""
        original_name = PurePosixPath(requested_path.replace("\\", "/")).name
        if not original_name:
            raise UploadDeniedError("Upload path has no file name")

        pathname = f"{self.environment}/original/{generate_safe_name(original_name)}"
        now = int(time.time())
        expires_at = now + self.ttl
        claims = {
            "aud": TOKEN_AUDIENCE,
            "iat": now,
            "exp": expires_at,
            "pathname": pathname,
            "allowedContentTypes": list(self.allowed_content_types),
            "env": self.environment,
            "originalFileName": original_name,
        }
        token = jwt.encode(claims, self._secret, algorithm=ALGORITHM)
        logger.info("Issued upload token for %s (expires %d)", pathname, expires_at)
        return UploadGrant(
            token=token,
            pathname=pathname,
            allowed_content_types=self.allowed_content_types,
            expires_at=expires_at,
        )

    def verify(self, token: str | None, content_type: str | None) -> dict[str, Any]:
        """Return the token's claims if it allows an upload of ``content_type``."""
        if not token:
            raise UploadDeniedError("Missing upload token")
        try:
            claims = jwt.decode(
                token, self._secret, algorithms=[ALGORITHM], audience=TOKEN_AUDIENCE
            )
        except jwt.ExpiredSignatureError as e:
            raise UploadDeniedError("Upload token expired") from e
        except jwt.InvalidTokenError as e:
            logger.debug("Invalid upload token: %s", e)
            raise UploadDeniedError("Invalid upload token") from e

        mime = (content_type or "").split(";")[0].strip().lower()
        if mime not in claims.get("allowedContentTypes", []):
            msg = f"Content type '{mime or 'none'}' is not allowed for font uploads"
            raise UploadDeniedError(msg)
        return claims
