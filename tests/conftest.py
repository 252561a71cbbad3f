"""Shared fixtures for fontpress tests."""

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.t2CharStringPen import T2CharStringPen
from fontTools.pens.ttGlyphPen import TTGlyphPen

from fontpress.config import Settings
from fontpress.service import build_context
from fontpress.storage import LocalBlobStore, StorageError

# -- Fixture fonts ----------------------------------------------------------

FIXTURE_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
PUBLIC_URL = "http://files.test"


def _glyph_name(ch: str) -> str:
    return f"uni{ord(ch):04X}"


def _draw_box(pen, cubic: bool = False):
    pen.moveTo((100, 0))
    pen.lineTo((500, 0))
    if cubic:
        pen.curveTo((560, 200), (560, 500), (500, 700))
    else:
        pen.lineTo((500, 700))
    pen.lineTo((100, 700))
    pen.closePath()


def _glyph_order(chars: str) -> list[str]:
    return [".notdef", "space"] + [_glyph_name(c) for c in chars]


def _cmap(chars: str) -> dict[int, str]:
    return {0x20: "space", **{ord(c): _glyph_name(c) for c in chars}}


def _finish(fb: FontBuilder, order: list[str], family: str) -> None:
    fb.setupHorizontalMetrics({name: (600, 0 if name == "space" else 100) for name in order})
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable({"familyName": family, "styleName": "Regular"})
    fb.setupOS2(sTypoAscender=800, sTypoDescender=-200, usWinAscent=800, usWinDescent=200)
    fb.setupPost()


def build_ttf(path: Path, chars: str = FIXTURE_CHARS) -> Path:
    """Write a TrueType font with one box glyph per character."""
    order = _glyph_order(chars)
    fb = FontBuilder(1000, isTTF=True)
    fb.setupGlyphOrder(order)
    fb.setupCharacterMap(_cmap(chars))
    glyphs = {}
    for name in order:
        pen = TTGlyphPen(None)
        if name != "space":
            _draw_box(pen)
        glyphs[name] = pen.glyph()
    fb.setupGlyf(glyphs)
    _finish(fb, order, "Fixture Sans")
    fb.save(str(path))
    return path


def build_otf(path: Path, chars: str = FIXTURE_CHARS) -> Path:
    """Write a CFF-flavoured OpenType font with curved glyph outlines."""
    order = _glyph_order(chars)
    fb = FontBuilder(1000, isTTF=False)
    fb.setupGlyphOrder(order)
    fb.setupCharacterMap(_cmap(chars))
    charstrings = {}
    for name in order:
        pen = T2CharStringPen(600, None)
        if name != "space":
            _draw_box(pen, cubic=True)
        charstrings[name] = pen.getCharString()
    fb.setupCFF("FixtureSerif-Regular", {"FullName": "Fixture Serif"}, charstrings, {})
    _finish(fb, order, "Fixture Serif")
    fb.save(str(path))
    return path


@pytest.fixture()
def ttf_path(tmp_path):
    return build_ttf(tmp_path / "FixtureSans.ttf")


@pytest.fixture()
def otf_path(tmp_path):
    return build_otf(tmp_path / "FixtureSerif.otf")


# -- Local HTTP server ------------------------------------------------------


class _Route:
    def __init__(self, responses, delay=0.0, content_type="application/octet-stream"):
        self.responses = list(responses)
        self.delay = delay
        self.content_type = content_type

    def next(self):
        # The last response repeats once the sequence is used up
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class _FixtureHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        self._serve()

    def do_PUT(self):
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length) if length else b""
        self.server.uploads.append({"path": self.path, "headers": dict(self.headers), "body": body})
        self._serve()

    def _serve(self):
        self.server.hits.append(self.path)
        route = self.server.routes.get(self.path)
        if route is None:
            status, body = 404, b"not found"
            content_type = "text/plain"
        else:
            if route.delay:
                time.sleep(route.delay)
            status, body = route.next()
            content_type = route.content_type
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, fmt, *args):
        pass


class FixtureServer:
    """Threaded HTTP server with programmable routes and a hit log."""

    def __init__(self):
        self.httpd = ThreadingHTTPServer(("127.0.0.1", 0), _FixtureHandler)
        self.httpd.daemon_threads = True
        self.httpd.block_on_close = False
        self.httpd.routes = {}
        self.httpd.hits = []
        self.httpd.uploads = []
        self.thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)

    @property
    def hits(self) -> list[str]:
        return self.httpd.hits

    @property
    def uploads(self) -> list[dict]:
        return self.httpd.uploads

    def url(self, path: str) -> str:
        host, port = self.httpd.server_address[:2]
        return f"http://{host}:{port}{path}"

    def add(self, path, body=b"", status=200, *, delay=0.0, sequence=None, content_type=None):
        responses = sequence if sequence is not None else [(status, body)]
        self.httpd.routes[path] = _Route(
            responses, delay, content_type or "application/octet-stream"
        )
        return self.url(path)

    def add_json(self, path, data, status=200):
        body = json.dumps(data).encode()
        return self.add(path, body, status, content_type="application/json")

    def start(self):
        self.thread.start()
        return self

    def stop(self):
        self.httpd.shutdown()
        self.httpd.server_close()


@pytest.fixture()
def font_server():
    server = FixtureServer().start()
    yield server
    server.stop()


# -- Service fixtures -------------------------------------------------------


class RecordingStore(LocalBlobStore):
    """Local store that remembers every put call."""

    def __init__(self, root, base_url=PUBLIC_URL):
        super().__init__(root, base_url)
        self.puts: list[dict] = []

    def put(self, pathname, data, *, content_type, access="public"):
        self.puts.append({"pathname": pathname, "content_type": content_type, "access": access})
        return super().put(pathname, data, content_type=content_type, access=access)


class FailingStore:
    def put(self, pathname, data, *, content_type, access="public"):
        raise StorageError("storage is down")


@pytest.fixture()
def work_dir(tmp_path):
    """Parent directory for per-job temp dirs; should be empty after each job."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture()
def settings(tmp_path, work_dir):
    return Settings(
        environment="test",
        retry_backoff=0.0,
        download_timeout=5.0,
        processing_timeout=10.0,
        request_deadline=20.0,
        temp_dir=str(work_dir),
        storage_dir=str(tmp_path / "blob"),
        public_base_url=PUBLIC_URL,
        upload_secret="test-secret",
    )


@pytest.fixture()
def store(tmp_path):
    return RecordingStore(tmp_path / "blob")


@pytest.fixture()
def context(settings, store):
    return build_context(settings, store=store)
