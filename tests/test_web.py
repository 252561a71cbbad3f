"""HTTP surface tests against a real ThreadingHTTPServer on an ephemeral port."""

import io
import json
import threading
import time
from contextlib import contextmanager
from urllib.error import HTTPError
from urllib.request import Request, urlopen

import pytest
from fontTools.ttLib import TTFont

from fontpress import web as web_module
from fontpress.service import build_context
from fontpress.web import bind_server, make_server, send_body
from tests.conftest import PUBLIC_URL


@contextmanager
def serving(server):
    """Run ``server`` in a background thread and yield its base URL."""
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    try:
        yield f"http://{host}:{port}"
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture()
def api(context):
    with serving(make_server(context, "127.0.0.1", 0)) as base:
        yield base


def call(base, method, path, body=None, headers=None):
    """Return (status, headers, body bytes) without raising on error statuses."""
    data = body
    headers = dict(headers or {})
    if isinstance(body, (dict, list)):
        data = json.dumps(body).encode()
        headers.setdefault("Content-Type", "application/json")
    req = Request(base + path, data=data, method=method, headers=headers)
    try:
        with urlopen(req, timeout=30) as resp:
            return resp.status, resp.headers, resp.read()
    except HTTPError as e:
        with e:
            return e.code, e.headers, e.read()


def call_json(base, method, path, body=None, headers=None):
    status, resp_headers, raw = call(base, method, path, body, headers)
    return status, resp_headers, json.loads(raw)


class TestCompressRoute:
    def test_success(self, api, font_server, ttf_path, work_dir):
        url = font_server.add("/fonts/Fixture.ttf", ttf_path.read_bytes())
        status, headers, data = call_json(
            api, "POST", "/api/compress", {"url": url, "text": "Hello", "charsets": ["digits"]}
        )
        assert status == 200
        assert data["success"] is True
        assert data["fontName"].startswith("compressed-Fixture_")
        assert data["fileSize"] > 0
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert list(work_dir.iterdir()) == []

    def test_published_file_is_served(self, api, font_server, ttf_path, store):
        url = font_server.add("/a.ttf", ttf_path.read_bytes())
        _, _, data = call_json(api, "POST", "/api/compress", {"url": url, "text": "AB"})
        pathname = data["downloadUrl"].split("/", 3)[3]
        status, headers, body = call(api, "GET", f"/files/{pathname}")
        assert status == 200
        assert headers["Content-Type"] == "font/ttf"
        assert len(body) == data["fileSize"]

    def test_missing_parameters(self, api, font_server):
        status, _, data = call_json(api, "POST", "/api/compress", {"text": "abc"})
        assert status == 400
        assert data["success"] is False
        assert "url" in data["error"]
        assert font_server.hits == []

    def test_fetch_failure(self, api, font_server):
        status, _, data = call_json(
            api, "POST", "/api/compress", {"url": font_server.url("/nope.ttf"), "text": "A"}
        )
        assert status == 500
        assert data["success"] is False
        # non-production responses carry the traceback
        assert "DownloadError" in data["detail"]

    def test_invalid_json(self, api):
        status, _, data = call_json(
            api, "POST", "/api/compress", b"{not json", {"Content-Type": "application/json"}
        )
        assert status == 400
        assert data["error"] == "Invalid JSON"

    def test_body_must_be_object(self, api):
        status, _, data = call_json(api, "POST", "/api/compress", ["a"])
        assert status == 400

    def test_wrong_field_type(self, api):
        status, _, data = call_json(
            api, "POST", "/api/compress", {"url": "https://a/x.ttf", "charsets": "latin"}
        )
        assert status == 400
        assert "charsets" in data["error"]

    def test_method_not_allowed(self, api):
        status, headers, data = call_json(api, "GET", "/api/compress")
        assert status == 405
        assert "POST" in headers["Allow"]
        assert data["success"] is False


class TestCharsetsRoute:
    def test_list(self, api):
        status, _, data = call_json(api, "GET", "/api/get-charsets")
        assert status == 200
        assert "latin" in data["charsets"]["standard"]
        assert "pan-european" in data["charsets"]["combined"]

    def test_one(self, api):
        status, _, data = call_json(api, "GET", "/api/get-charsets?name=digits")
        assert status == 200
        assert data == {"success": True, "name": "digits", "characters": "0123456789", "length": 10}

    def test_unknown(self, api):
        status, _, data = call_json(api, "GET", "/api/get-charsets?name=klingon")
        assert status == 404
        assert "klingon" in data["error"]


class TestUploadRoutes:
    def test_grant_then_upload(self, api, store):
        status, _, grant = call_json(api, "POST", "/api/upload-font", {"pathname": "My Font.ttf"})
        assert status == 200
        assert grant["pathname"].startswith("test/original/My_Font_")

        status, _, stored = call_json(
            api,
            "PUT",
            "/api/upload",
            b"font-bytes",
            {"Authorization": f"Bearer {grant['token']}", "Content-Type": "font/ttf"},
        )
        assert status == 200
        assert stored["pathname"] == grant["pathname"]
        assert store.read(grant["pathname"]) == b"font-bytes"

    def test_upload_without_token(self, api):
        status, _, data = call_json(
            api, "PUT", "/api/upload", b"x", {"Content-Type": "font/ttf"}
        )
        assert status == 403

    def test_upload_wrong_type(self, api):
        _, _, grant = call_json(api, "POST", "/api/upload-font", {"pathname": "a.ttf"})
        status, _, data = call_json(
            api,
            "PUT",
            f"/api/upload?token={grant['token']}",
            b"<html>",
            {"Content-Type": "text/html"},
        )
        assert status == 403
        assert "not allowed" in data["error"]

    def test_grant_requires_pathname(self, api):
        status, _, data = call_json(api, "POST", "/api/upload-font", {})
        assert status == 400
        assert "pathname" in data["error"]


class TestMiscRoutes:
    def test_health(self, api):
        status, _, data = call_json(api, "GET", "/api/health")
        assert status == 200
        assert data["status"] == "ok"

    def test_unknown_route(self, api):
        status, _, data = call_json(api, "GET", "/api/nothing")
        assert status == 404

    def test_options_preflight(self, api):
        status, headers, body = call(api, "OPTIONS", "/api/compress")
        assert status == 204
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert "POST" in headers["Access-Control-Allow-Methods"]

    def test_missing_file(self, api):
        status, _, _ = call(api, "GET", "/files/test/compressed/none.ttf")
        assert status == 404

    def test_file_path_traversal(self, api):
        status, _, _ = call(api, "GET", "/files/..%2F..%2Fetc%2Fpasswd")
        assert status == 404


class TestJobSlots:
    def test_parallel_requests_stay_separate(self, api, font_server, ttf_path, store, work_dir):
        url = font_server.add("/fonts/Fixture.ttf", ttf_path.read_bytes())
        texts = ["AB", "CD", "EF"]
        results = {}

        def post(text):
            results[text] = call_json(api, "POST", "/api/compress", {"url": url, "text": text})

        threads = [threading.Thread(target=post, args=(text,)) for text in texts]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(results) == texts
        assert len({data["downloadUrl"] for _, _, data in results.values()}) == 3
        for text, (status, _, data) in results.items():
            assert status == 200
            pathname = data["downloadUrl"][len(PUBLIC_URL) + 1 :]
            font = TTFont(io.BytesIO(store.read(pathname)))
            assert set(font.getBestCmap()) == {ord(c) for c in text}
        assert list(work_dir.iterdir()) == []

    def test_busy_when_no_slot_frees(self, settings, store, font_server, ttf_path, monkeypatch):
        monkeypatch.setattr(web_module, "JOB_SLOT_WAIT", 0.1)
        settings.max_concurrent_jobs = 1
        context = build_context(settings, store=store)
        url = font_server.add("/a.ttf", ttf_path.read_bytes())

        assert context.job_slots.acquire(timeout=1)
        try:
            with serving(make_server(context, "127.0.0.1", 0)) as base:
                body = {"url": url, "text": "A"}
                status, _, data = call_json(base, "POST", "/api/compress", body)
        finally:
            context.job_slots.release()

        assert status == 503
        assert data["success"] is False
        assert "busy" in data["error"]
        assert font_server.hits == []
        assert store.puts == []

    def test_slot_wait_counts_toward_deadline(
        self, settings, store, font_server, work_dir, monkeypatch
    ):
        monkeypatch.setattr(web_module, "JOB_SLOT_WAIT", 5)
        settings.max_concurrent_jobs = 1
        settings.request_deadline = 1.0
        context = build_context(settings, store=store)
        url = font_server.add("/slow.ttf", b"late", delay=3.0)

        assert context.job_slots.acquire(timeout=1)
        freer = threading.Timer(0.8, context.job_slots.release)
        freer.start()
        with serving(make_server(context, "127.0.0.1", 0)) as base:
            started = time.monotonic()
            status, _, data = call_json(base, "POST", "/api/compress", {"url": url, "text": "A"})
            elapsed = time.monotonic() - started
        freer.join()

        assert status == 504
        assert data["success"] is False
        assert elapsed < 1.6
        assert list(work_dir.iterdir()) == []


class TestBindServer:
    def test_file_urls_follow_bound_port(self, settings, font_server, ttf_path):
        settings.public_base_url = None
        server = bind_server(settings, "127.0.0.1", 0)
        url = font_server.add("/a.ttf", ttf_path.read_bytes())

        with serving(server) as base:
            status, _, data = call_json(base, "POST", "/api/compress", {"url": url, "text": "AB"})
            assert status == 200
            assert data["downloadUrl"].startswith(f"{base}/files/test/compressed/")
            file_status, headers, body = call(data["downloadUrl"], "GET", "")

        assert server.context.settings.files_url == f"{base}/files"
        assert file_status == 200
        assert headers["Content-Type"] == "font/ttf"
        assert len(body) == data["fileSize"]

    def test_explicit_public_url_kept(self, settings):
        server = bind_server(settings, "127.0.0.1", 0)
        server.server_close()
        assert server.context.settings.files_url == PUBLIC_URL


class _FakeHandler:
    command = "POST"
    path = "/api/compress"

    def __init__(self):
        self.statuses = []
        self.wfile = io.BytesIO()

    def send_response(self, status):
        self.statuses.append(status)

    def send_header(self, key, value):
        pass

    def end_headers(self):
        pass


class TestSendBody:
    def test_only_first_response_is_sent(self):
        handler = _FakeHandler()
        assert send_body(handler, b"first", 200)
        assert not send_body(handler, b"second", 500)
        assert handler.statuses == [200]
        assert handler.wfile.getvalue() == b"first"

    def test_head_has_no_body(self):
        handler = _FakeHandler()
        handler.command = "HEAD"
        send_body(handler, b"payload", 200)
        assert handler.wfile.getvalue() == b""
