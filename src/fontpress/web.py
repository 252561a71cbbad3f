"""HTTP surface shared by serve.py and the Vercel functions in api/.

Routes:
- POST /api/compress:      subset a remote font and publish the result
- GET  /api/get-charsets:  list presets, or one preset with ?name=<id>
- POST /api/upload-font:   issue a signed upload token for an original font
- PUT  /api/upload:        store an original font using such a token
- GET  /api/health:        liveness check
- GET  /files/<path>:      objects in the local store (development only)
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, unquote, urlsplit

from pydantic import ValidationError

from fontpress.config import DEFAULT_PORT, MAX_BODY_SIZE, MAX_UPLOAD_SIZE, Settings
from fontpress.errors import UploadDeniedError
from fontpress.publisher import content_type_for
from fontpress.schema import (
    CharsetListResponse,
    CharsetResponse,
    CompressRequest,
    ErrorResponse,
    UploadGrantRequest,
    UploadGrantResponse,
)
from fontpress.service import ServiceContext, build_context
from fontpress.storage import BlobStore, LocalBlobStore, StorageError

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

ROUTES = {
    "/api/compress": {"POST": "_handle_compress"},
    "/api/get-charsets": {"GET": "_handle_charsets"},
    "/api/upload-font": {"POST": "_handle_upload_grant"},
    "/api/upload": {"PUT": "_handle_upload"},
    "/api/health": {"GET": "_handle_health"},
}

JOB_SLOT_WAIT = 10  # seconds to wait for a free job slot before answering 503


# ---------------------------------------------------------------------------
# HTTP helpers (work with any BaseHTTPRequestHandler subclass)
# ---------------------------------------------------------------------------


def send_body(
    handler: BaseHTTPRequestHandler,
    body: bytes,
    status: int = 200,
    content_type: str = "application/json",
    headers: dict[str, str] | None = None,
) -> bool:
    """Write one complete response. Returns False if one was already sent."""
    if getattr(handler, "_replied", False):
        logger.warning("Dropping second response (%d) for %s", status, handler.path)
        return False
    handler._replied = True

    handler.send_response(status)
    handler.send_header("Content-Type", content_type)
    handler.send_header("Content-Length", str(len(body)))
    for k, v in CORS_HEADERS.items():
        handler.send_header(k, v)
    for k, v in (headers or {}).items():
        handler.send_header(k, v)
    handler.end_headers()
    if handler.command != "HEAD":
        handler.wfile.write(body)
    return True


def json_response(
    handler: BaseHTTPRequestHandler,
    data: Any,
    status: int = 200,
    headers: dict[str, str] | None = None,
) -> bool:
    body = json.dumps(data, ensure_ascii=False).encode("utf-8")
    return send_body(handler, body, status, "application/json; charset=utf-8", headers)


def json_error(
    handler: BaseHTTPRequestHandler,
    message: str,
    status: int = 400,
    headers: dict[str, str] | None = None,
) -> bool:
    return json_response(handler, ErrorResponse(error=message).to_json_dict(), status, headers)


def read_json_body(handler: BaseHTTPRequestHandler, max_size: int = MAX_BODY_SIZE) -> Any | None:
    """Read and parse a JSON body.

    Returns the parsed value, or None if an error response was already sent.
    """
    try:
        length = int(handler.headers.get("Content-Length", 0))
    except ValueError:
        length = -1
    if length > max_size or length < 0:
        logger.warning(
            "Rejected request from %s: bad or oversized body (%d bytes)",
            handler.client_address[0],
            length,
        )
        json_error(handler, "Payload too large", 413)
        return None
    if length == 0:
        json_error(handler, "Empty body", 400)
        return None

    try:
        return json.loads(handler.rfile.read(length))
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Rejected request from %s: invalid JSON body", handler.client_address[0])
        json_error(handler, "Invalid JSON", 400)
        return None


def get_bearer_token(handler: BaseHTTPRequestHandler) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth = handler.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth[7:].strip() or None
    return None


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    where = ".".join(str(p) for p in first.get("loc", ())) or "body"
    return f"Invalid '{where}': {first.get('msg', 'invalid value')}"


# ---------------------------------------------------------------------------
# Request handler
# ---------------------------------------------------------------------------


class ServiceHandler(BaseHTTPRequestHandler):
    """Routes API requests to the pipeline. Subclasses set ``context``."""

    context: ServiceContext | None = None
    server_version = "fontpress/0.1"

    def end_headers(self):
        self.send_header("X-Content-Type-Options", "nosniff")
        self.send_header("Connection", "close")
        super().end_headers()

    def log_message(self, fmt, *args):
        logger.info("%s %s", self.address_string(), fmt % args)

    # -- dispatch -----------------------------------------------------------

    def do_GET(self):
        self._dispatch("GET")

    def do_HEAD(self):
        self._dispatch("HEAD")

    def do_POST(self):
        self._dispatch("POST")

    def do_PUT(self):
        self._dispatch("PUT")

    def do_DELETE(self):
        self._dispatch("DELETE")

    def do_OPTIONS(self):
        """Handle CORS preflight requests."""
        self._replied = False
        send_body(self, b"", 204, "text/plain")

    def _dispatch(self, method: str) -> None:
        self._replied = False
        route = urlsplit(self.path).path.rstrip("/") or "/"

        if route.startswith("/files/") and method in ("GET", "HEAD"):
            self._handle_file(route[len("/files/") :])
            return

        methods = ROUTES.get(route)
        if methods is None:
            json_error(self, f"Not found: {route}", 404)
            return
        if method == "HEAD" and "GET" in methods:
            method = "GET"
        if method not in methods:
            allowed = ", ".join(methods)
            json_error(
                self,
                f"Method {method} not allowed, use: {allowed}",
                405,
                headers={"Allow": f"{allowed}, OPTIONS"},
            )
            return

        try:
            getattr(self, methods[method])()
        except Exception:
            logger.exception("Unhandled error for %s %s", method, route)
            json_error(self, "Internal server error", 500)

    @property
    def ctx(self) -> ServiceContext:
        if self.context is None:
            raise RuntimeError("ServiceHandler.context is not configured")
        return self.context

    def _query(self) -> dict[str, str]:
        params = parse_qs(urlsplit(self.path).query)
        return {k: v[0] for k, v in params.items() if v}

    # -- routes -------------------------------------------------------------

    def _handle_compress(self):
        body = read_json_body(self)
        if body is None:
            return
        if not isinstance(body, dict):
            json_error(self, "Request body must be a JSON object", 400)
            return
        try:
            request = CompressRequest.model_validate(body)
        except ValidationError as e:
            json_error(self, _validation_message(e), 400)
            return

        ctx = self.ctx
        # Waiting for a slot spends the same budget as the job itself
        started = time.monotonic()
        deadline = ctx.orchestrator.deadline
        if not ctx.job_slots.acquire(timeout=min(JOB_SLOT_WAIT, deadline)):
            json_error(self, "Server busy, try again later", 503)
            return
        try:
            remaining = deadline - (time.monotonic() - started)
            outcome = asyncio.run(ctx.orchestrator.run(request, deadline=remaining))
        finally:
            ctx.job_slots.release()

        json_response(self, outcome.payload(expose_detail=ctx.expose_detail), outcome.status)

    def _handle_charsets(self):
        query = self._query()
        name = query.get("name") or query.get("id")
        registry = self.ctx.registry
        if not name:
            listing = CharsetListResponse(charsets=registry.list_available())
            json_response(self, listing.model_dump())
            return

        chars = registry.resolve(name)
        if chars is None:
            logger.warning("Charset not found: %s", name)
            json_error(self, f"Charset '{name}' not found", 404)
            return
        json_response(
            self, CharsetResponse(name=name, characters=chars, length=len(chars)).model_dump()
        )

    def _handle_upload_grant(self):
        body = read_json_body(self)
        if body is None:
            return
        try:
            grant_request = UploadGrantRequest.model_validate(body)
            grant = self.ctx.uploads.issue(grant_request.pathname)
        except ValidationError as e:
            json_error(self, _validation_message(e), 400)
            return
        except UploadDeniedError as e:
            json_error(self, str(e), 400)
            return

        json_response(
            self,
            UploadGrantResponse(
                token=grant.token,
                pathname=grant.pathname,
                allowed_content_types=list(grant.allowed_content_types),
                expires_at=grant.expires_at,
            ).model_dump(by_alias=True),
        )

    def _handle_upload(self):
        token = get_bearer_token(self) or self._query().get("token")
        content_type = self.headers.get("Content-Type")
        try:
            claims = self.ctx.uploads.verify(token, content_type)
        except UploadDeniedError as e:
            json_error(self, str(e), 403)
            return

        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            length = -1
        if length > MAX_UPLOAD_SIZE or length < 0:
            json_error(self, "Payload too large", 413)
            return
        if length == 0:
            json_error(self, "Empty body", 400)
            return

        data = self.rfile.read(length)
        mime = content_type.split(";")[0].strip().lower()
        try:
            blob = self.ctx.store.put(claims["pathname"], data, content_type=mime)
        except StorageError:
            logger.exception("Upload storage failed for %s", claims["pathname"])
            json_error(self, "Upload failed", 500)
            return

        logger.info("Stored upload %s (%d bytes)", blob.pathname, blob.size)
        json_response(
            self, {"success": True, "url": blob.url, "pathname": blob.pathname, "size": blob.size}
        )

    def _handle_health(self):
        json_response(
            self,
            {
                "status": "ok",
                "uptime": round(time.time() - self.ctx.started_at, 3),
                "timestamp": int(time.time() * 1000),
            },
        )

    def _handle_file(self, pathname: str):
        store = self.ctx.store
        if not isinstance(store, LocalBlobStore):
            json_error(self, "Not found", 404)
            return
        pathname = unquote(pathname)
        try:
            data = store.read(pathname)
        except (StorageError, OSError):
            json_error(self, "Not found", 404)
            return
        suffix = "." + pathname.rsplit(".", 1)[-1] if "." in pathname else ""
        send_body(
            self,
            data,
            200,
            content_type_for(suffix),
            headers={"Cache-Control": "public, max-age=86400"},
        )


def make_handler(context: ServiceContext) -> type[ServiceHandler]:
    """Return a handler class bound to ``context``."""
    return type("BoundServiceHandler", (ServiceHandler,), {"context": context})


def make_server(
    context: ServiceContext, host: str = "127.0.0.1", port: int = DEFAULT_PORT
) -> ThreadingHTTPServer:
    server = ThreadingHTTPServer((host, port), make_handler(context))
    server.daemon_threads = True
    return server


def bind_server(
    settings: Settings,
    host: str = "127.0.0.1",
    port: int = DEFAULT_PORT,
    *,
    store: BlobStore | None = None,
) -> ThreadingHTTPServer:
    """Bind first, then build the service so local file URLs carry the real port."""
    server = ThreadingHTTPServer((host, port), ServiceHandler)
    server.daemon_threads = True
    bound_host, bound_port = server.server_address[:2]
    context = build_context(settings.for_server(bound_host, bound_port), store=store)
    server.RequestHandlerClass = make_handler(context)
    server.context = context
    return server
