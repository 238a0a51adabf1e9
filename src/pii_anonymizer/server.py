"""HTTP sidecar serving the model fetch proxy.

Runs as a lightweight stdlib HTTP server on localhost. The browser-side
detector points its model downloads here instead of at Hugging Face.

Endpoints:
    GET     /health              Health check
    GET     /api/models/<path>   Proxy to cas-bridge.xethub.hf.co
    GET     /api/hf-proxy?url=   Proxy a huggingface.co URL, following redirects
    OPTIONS (any proxy route)    CORS preflight

No anonymization happens here; text never leaves the client process.
"""

from __future__ import annotations
import json
import logging
import shutil
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from . import model_proxy
from .model_proxy import (
    CORS_HEADERS,
    EXPOSE_HEADERS,
    HF_PROXY_PATH,
    MODELS_PREFIX,
    PREFLIGHT_HEADERS,
    ProxyError,
)

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 18792
CHUNK_SIZE = 64 * 1024


class ModelProxyHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the model fetch proxy."""

    # Swappable for tests
    fetch = staticmethod(model_proxy.fetch)
    upstream_timeout: float = 60.0

    def _respond(self, status: int, data: Any, headers: dict[str, str] | None = None) -> None:
        body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)

    def _is_proxy_route(self, path: str) -> bool:
        return path.startswith(MODELS_PREFIX) or path == HF_PROXY_PATH

    def do_OPTIONS(self) -> None:
        path = urlsplit(self.path).path
        if not self._is_proxy_route(path):
            self._respond(404, {"error": "not found"})
            return
        self.send_response(204)
        for name, value in PREFLIGHT_HEADERS.items():
            self.send_header(name, value)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_GET(self) -> None:
        parts = urlsplit(self.path)
        if parts.path == "/health":
            self._respond(200, {"status": "ok"})
            return
        if not self._is_proxy_route(parts.path):
            self._respond(404, {"error": "not found"})
            return

        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        try:
            if parts.path == HF_PROXY_PATH:
                target = model_proxy.hf_target(query.get("url"))
            else:
                target = model_proxy.models_target(parts.path[len(MODELS_PREFIX):], query)
            upstream = self.fetch(
                target,
                range_header=self.headers.get("Range"),
                timeout=self.upstream_timeout,
            )
        except ProxyError as e:
            self._respond(e.status, {"error": e.message}, CORS_HEADERS)
            return

        try:
            self.send_response(upstream.status)
            for name, value in {**upstream.headers, **CORS_HEADERS, **EXPOSE_HEADERS}.items():
                self.send_header(name, value)
            self.end_headers()
            shutil.copyfileobj(upstream.body, self.wfile, CHUNK_SIZE)
        except (BrokenPipeError, ConnectionResetError):
            logger.info("Client went away while streaming %s", parts.path)
        finally:
            upstream.close()


def make_server(
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    handler: type[ModelProxyHandler] = ModelProxyHandler,
) -> ThreadingHTTPServer:
    return ThreadingHTTPServer((host, port), handler)


def serve(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Start the model proxy sidecar and block until interrupted."""
    server = make_server(host, port)
    logger.info("model proxy listening on http://%s:%d", host, server.server_address[1])
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        server.server_close()


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Model fetch proxy sidecar")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    serve(host=args.host, port=args.port)
