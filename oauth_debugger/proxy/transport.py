"""Outbound HTTP call shared by the relay server and the direct fetcher."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode, urlsplit

import httpx

from .. import __version__

logger = logging.getLogger(__name__)

USER_AGENT = f"mcp-oauth-debugger/{__version__}"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"

_BODYLESS_METHODS = {"GET", "HEAD"}


@dataclass
class ProxyResponse:
    """Response of a target server as seen through the relay.

    Header names are lower-cased; ``body`` is parsed JSON when possible,
    otherwise text.
    """

    status: int
    status_text: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def validate_target_url(url: str | None) -> str:
    """Check that a relay target is an absolute http(s) URL.

    Raises:
        ValueError: With the message returned to relay callers
    """
    if not url:
        raise ValueError("Missing url parameter")
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise ValueError("Invalid URL format") from e
    if not parts.scheme or not parts.netloc:
        raise ValueError("Invalid URL format")
    if parts.scheme not in ("http", "https"):
        raise ValueError("Invalid protocol")
    return url


def _header(headers: dict[str, str], name: str) -> str | None:
    name = name.lower()
    return next((v for k, v in headers.items() if k.lower() == name), None)


def encode_body(method: str, headers: dict[str, str], body: Any) -> bytes | None:
    """Serialize a request body according to its declared content type.

    Sets ``Content-Type: application/json`` on ``headers`` when a body is sent
    without one.
    """
    if body is None or method.upper() in _BODYLESS_METHODS:
        return None

    content_type = _header(headers, "content-type")
    if content_type is None:
        content_type = JSON_CONTENT_TYPE
        headers["Content-Type"] = content_type

    if FORM_CONTENT_TYPE in content_type and isinstance(body, dict):
        return urlencode({k: str(v) for k, v in body.items() if v is not None}).encode("utf-8")
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, bytes):
        return body
    return json.dumps(body).encode("utf-8")


def decode_body(response: httpx.Response) -> Any:
    """Parse a response body as JSON, falling back to text."""
    if not response.content:
        return None
    try:
        return response.json()
    except (ValueError, UnicodeDecodeError):
        return response.text


async def perform_request(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    body: Any = None,
) -> ProxyResponse:
    """Send one request to a target server and normalize its response.

    Raises:
        httpx.HTTPError: If the target cannot be reached
    """
    method = method.upper()
    request_headers = {"User-Agent": USER_AGENT, **(headers or {})}
    content = encode_body(method, request_headers, body)

    logger.debug(f"{method} {url}")
    response = await client.request(method, url, headers=request_headers, content=content)
    logger.debug(f"{method} {url} -> {response.status_code} {response.reason_phrase}")

    return ProxyResponse(
        status=response.status_code,
        status_text=response.reason_phrase,
        headers={k.lower(): v for k, v in response.headers.items()},
        body=decode_body(response),
    )
