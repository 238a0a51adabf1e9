"""Tests for the model fetch proxy: URL routing, upstream fetch, HTTP handler."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import io
import json
import threading
from email.message import Message
from http.client import HTTPConnection
from urllib.error import HTTPError, URLError

import pytest

from pii_anonymizer import model_proxy
from pii_anonymizer.model_proxy import ProxyError, UpstreamResponse, fetch, hf_target, models_target, rewrite_url
from pii_anonymizer.server import ModelProxyHandler, make_server


# ── Routing ──────────────────────────────────────────────────────────

def test_rewrite_xet_url():
    assert rewrite_url("https://cas-bridge.xethub.hf.co/xet-bridge-us/abc?X-Amz-Signature=s") \
        == "/api/models/xet-bridge-us/abc?X-Amz-Signature=s"


def test_rewrite_hf_resolve_url():
    url = "https://huggingface.co/Xenova/bert/resolve/main/onnx/model.onnx"
    assert rewrite_url(url) == "/api/hf-proxy?url=https%3A%2F%2Fhuggingface.co%2FXenova%2Fbert%2Fresolve%2Fmain%2Fonnx%2Fmodel.onnx"


def test_rewrite_leaves_other_urls():
    assert rewrite_url("https://example.com/model.onnx") is None
    assert rewrite_url("https://huggingface.co/Xenova/bert") is None


def test_models_target():
    assert models_target("a/b", {"sig": "x y"}) == "https://cas-bridge.xethub.hf.co/a/b?sig=x+y"
    with pytest.raises(ProxyError) as info:
        models_target("")
    assert info.value.status == 400


def test_hf_target_only_huggingface():
    assert hf_target("https://huggingface.co/x/resolve/main/f") == "https://huggingface.co/x/resolve/main/f"
    assert hf_target("https://cdn-lfs.huggingface.co/f") == "https://cdn-lfs.huggingface.co/f"
    for bad in (None, "", "http://huggingface.co/f", "https://evil.com/huggingface.co",
                "https://huggingface.co.evil.com/f"):
        with pytest.raises(ProxyError) as info:
            hf_target(bad)
        assert info.value.status == 400


# ── Upstream fetch ───────────────────────────────────────────────────

class _FakeResponse(io.BytesIO):
    def __init__(self, body, status=200, headers=None):
        super().__init__(body)
        self.status = status
        self.headers = Message()
        for name, value in (headers or {}).items():
            self.headers[name] = value


def test_fetch_forwards_range_and_passes_206():
    seen = {}

    def opener(request, timeout):
        seen["range"] = request.get_header("Range")
        seen["timeout"] = timeout
        return _FakeResponse(b"abc", 206, {"Content-Range": "bytes 0-2/10", "Content-Length": "3"})

    upstream = fetch("https://huggingface.co/f", range_header="bytes=0-2", timeout=5, opener=opener)
    assert seen == {"range": "bytes=0-2", "timeout": 5}
    assert upstream.status == 206
    assert upstream.headers["Content-Range"] == "bytes 0-2/10"
    assert upstream.headers["Content-Type"] == "application/octet-stream"
    assert upstream.body.read() == b"abc"


def test_fetch_keeps_upstream_error_status():
    def opener(request, timeout):
        raise HTTPError(request.full_url, 403, "Forbidden", Message(), None)

    with pytest.raises(ProxyError) as info:
        fetch("https://huggingface.co/f", opener=opener)
    assert info.value.status == 403


def test_fetch_unreachable_is_bad_gateway():
    def opener(request, timeout):
        raise URLError("connection refused")

    with pytest.raises(ProxyError) as info:
        fetch("https://huggingface.co/f", opener=opener)
    assert info.value.status == 502


def test_fetch_closes_upstream_error_body():
    body = io.BytesIO(b"denied")

    def opener(request, timeout):
        raise HTTPError(request.full_url, 403, "Forbidden", Message(), body)

    with pytest.raises(ProxyError):
        fetch("https://huggingface.co/f", opener=opener)
    assert body.closed


def test_fetch_bodiless_upstream_status_is_bad_gateway():
    responses = []

    def opener(request, timeout):
        responses.append(_FakeResponse(b"", 204))
        return responses[-1]

    with pytest.raises(ProxyError) as info:
        fetch("https://huggingface.co/f", opener=opener)
    assert info.value.status == 502
    assert responses[0].closed

    def not_modified(request, timeout):
        raise HTTPError(request.full_url, 304, "Not Modified", Message(), None)

    with pytest.raises(ProxyError) as info:
        fetch("https://huggingface.co/f", opener=not_modified)
    assert info.value.status == 502


# ── HTTP handler ─────────────────────────────────────────────────────

class _Handler(ModelProxyHandler):
    requests = []

    @staticmethod
    def fetch(url, *, range_header=None, timeout=60.0):
        _Handler.requests.append((url, range_header))
        if url.endswith("/missing"):
            raise ProxyError(404, "Failed to fetch model: Not Found")
        status = 206 if range_header else 200
        return UpstreamResponse(status, io.BytesIO(b"weights"), {"Content-Type": "application/octet-stream"})


@pytest.fixture
def proxy():
    _Handler.requests = []
    server = make_server("127.0.0.1", 0, _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[1]
    server.shutdown()
    server.server_close()


def _request(port, method, path, headers=None):
    conn = HTTPConnection("127.0.0.1", port, timeout=5)
    conn.request(method, path, headers=headers or {})
    response = conn.getresponse()
    body = response.read()
    conn.close()
    return response, body


def test_health(proxy):
    response, body = _request(proxy, "GET", "/health")
    assert response.status == 200
    assert json.loads(body) == {"status": "ok"}


def test_preflight(proxy):
    response, body = _request(proxy, "OPTIONS", "/api/models/a/b")
    assert response.status == 204
    assert response.getheader("Access-Control-Allow-Origin") == "*"
    assert "Range" in response.getheader("Access-Control-Allow-Headers")
    assert body == b""


def test_models_route_streams_range(proxy):
    response, body = _request(proxy, "GET", "/api/models/bridge/file?sig=1", {"Range": "bytes=0-6"})
    assert response.status == 206
    assert body == b"weights"
    assert response.getheader("Access-Control-Allow-Origin") == "*"
    assert "Content-Range" in response.getheader("Access-Control-Expose-Headers")
    assert _Handler.requests == [("https://cas-bridge.xethub.hf.co/bridge/file?sig=1", "bytes=0-6")]


def test_hf_route(proxy):
    url = "https://huggingface.co/Xenova/bert/resolve/main/config.json"
    response, body = _request(proxy, "GET", model_proxy.rewrite_url(url))
    assert response.status == 200
    assert body == b"weights"
    assert _Handler.requests == [(url, None)]


def test_hf_route_rejects_other_hosts(proxy):
    response, body = _request(proxy, "GET", "/api/hf-proxy?url=https%3A%2F%2Fexample.com%2Ff")
    assert response.status == 400
    assert json.loads(body) == {"error": "Only huggingface.co URLs are allowed"}
    assert _Handler.requests == []


def test_upstream_error_status_relayed(proxy):
    response, _ = _request(proxy, "GET", "/api/models/missing")
    assert response.status == 404
    assert response.getheader("Access-Control-Allow-Origin") == "*"


def test_unknown_route(proxy):
    response, _ = _request(proxy, "GET", "/api/other")
    assert response.status == 404


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
