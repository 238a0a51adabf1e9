"""Model fetch proxy — lets a browser detector stream model weights from
Hugging Face without a direct cross-origin request.

Two routes mirror what the browser would otherwise call:

    /api/models/<path>?<query>   →  https://cas-bridge.xethub.hf.co/<path>?<query>
    /api/hf-proxy?url=<url>      →  <url>  (huggingface.co only, redirects followed)

Range requests and 206 responses pass through unchanged. The proxy keeps
no state between requests and never sees PII, only model files.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import IO, Callable
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode, urlsplit
from urllib.request import Request, urlopen

logger = logging.getLogger(__name__)

XET_HOST = "cas-bridge.xethub.hf.co"
HF_HOST = "huggingface.co"
MODELS_PREFIX = "/api/models/"
HF_PROXY_PATH = "/api/hf-proxy"

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Range, Content-Type",
}
PREFLIGHT_HEADERS = {**CORS_HEADERS, "Access-Control-Max-Age": "86400"}
EXPOSE_HEADERS = {"Access-Control-Expose-Headers": "Content-Length, Content-Range, Accept-Ranges"}

# Upstream headers copied onto the proxied response
_PASSTHROUGH = ("Content-Length", "Content-Range", "Accept-Ranges")


class ProxyError(Exception):
    """An error the proxy reports to its client with an HTTP status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


@dataclass
class UpstreamResponse:
    status: int
    body: IO[bytes]
    headers: dict[str, str] = field(default_factory=dict)

    def close(self) -> None:
        self.body.close()


Opener = Callable[..., IO[bytes]]


def _host_allowed(host: str | None, allowed: str) -> bool:
    host = (host or "").lower()
    return host == allowed or host.endswith("." + allowed)


def rewrite_url(url: str) -> str | None:
    """Map an origin model URL to the proxy path that serves it.

    Returns None for URLs that should be fetched directly.
    """
    parts = urlsplit(url)
    if _host_allowed(parts.hostname, XET_HOST):
        path = parts.path.lstrip("/")
        return f"{MODELS_PREFIX}{path}" + (f"?{parts.query}" if parts.query else "")
    if _host_allowed(parts.hostname, HF_HOST) and "/resolve/" in parts.path:
        return f"{HF_PROXY_PATH}?url={quote(url, safe='')}"
    return None


def models_target(path: str, query: dict[str, str] | None = None) -> str:
    """Origin URL for a /api/models/<path> request."""
    if not path:
        raise ProxyError(400, "Path parameter is required")
    target = f"https://{XET_HOST}/{path.lstrip('/')}"
    if query:
        target += "?" + urlencode(query)
    return target


def hf_target(url: str | None) -> str:
    """Validate the url parameter of an /api/hf-proxy request."""
    if not url:
        raise ProxyError(400, "URL parameter is required")
    parts = urlsplit(url)
    if parts.scheme != "https" or not _host_allowed(parts.hostname, HF_HOST):
        raise ProxyError(400, "Only huggingface.co URLs are allowed")
    return url


def fetch(
    url: str,
    *,
    range_header: str | None = None,
    timeout: float = 60.0,
    opener: Opener = urlopen,
) -> UpstreamResponse:
    """GET url, following redirects, forwarding Range. Raises ProxyError."""
    headers = {"User-Agent": USER_AGENT}
    if range_header:
        headers["Range"] = range_header
    request = Request(url, headers=headers, method="GET")

    try:
        response = opener(request, timeout=timeout)
    except HTTPError as e:
        logger.error("Upstream failed: %s %s", e.code, e.reason)
        if e.fp is not None:
            e.close()
        # Bodiless statuses (304) cannot carry the JSON error
        status = e.code if e.code >= 400 else 502
        raise ProxyError(status, f"Failed to fetch model: {e.reason}") from e
    except (URLError, OSError) as e:
        logger.error("Upstream unreachable: %s", e)
        raise ProxyError(502, f"Failed to proxy model download: {e}") from e

    status = getattr(response, "status", 200)
    if status not in (200, 206):
        # 204 and friends carry no model bytes
        response.close()
        logger.error("Upstream returned unexpected status %s", status)
        raise ProxyError(502, f"Failed to fetch model: unexpected upstream status {status}")

    upstream = response.headers
    out = {"Content-Type": upstream.get("Content-Type") or "application/octet-stream"}
    for name in _PASSTHROUGH:
        value = upstream.get(name)
        if value:
            out[name] = value
    return UpstreamResponse(status=status, body=response, headers=out)
