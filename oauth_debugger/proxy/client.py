"""Fetchers used by the state machine to reach OAuth and MCP endpoints.

``RelayProxyClient`` routes every call through the relay server so that a
browser-hosted front end is not blocked by CORS; ``DirectFetcher`` issues the
same calls straight from this process. Both return a :class:`ProxyResponse`
for any HTTP status and raise :class:`ProxyTransportError` only when the
call itself could not be completed.
"""

import json
import logging
from typing import Any, Protocol
from urllib.parse import parse_qsl

import httpx

from ..utils.errors import ProxyTransportError
from .transport import FORM_CONTENT_TYPE, ProxyResponse, perform_request

logger = logging.getLogger(__name__)

RELAY_PROXY_PATH = "/api/mcp/oauth/debug/proxy"


class Fetcher(Protocol):
    """Anything able to perform an HTTP call for the state machine."""

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> ProxyResponse: ...


def normalize_body(body: Any, headers: dict[str, str] | None) -> Any:
    """Convert a string body to the structure the relay expects.

    Form-encoded text becomes a dict, JSON text becomes the parsed value and
    anything else is passed through unchanged.
    """
    if not isinstance(body, str):
        return body

    content_type = next(
        (v for k, v in (headers or {}).items() if k.lower() == "content-type"), ""
    )
    if FORM_CONTENT_TYPE in content_type:
        return dict(parse_qsl(body, keep_blank_values=True))
    if "json" in content_type or not content_type:
        try:
            return json.loads(body)
        except ValueError:
            return body
    return body


class RelayProxyClient:
    """Fetcher that sends every request through the relay server."""

    def __init__(
        self,
        relay_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the relay client.

        Args:
            relay_url: Base URL of the relay server (e.g. "http://localhost:6274")
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.proxy_url = relay_url.rstrip("/") + RELAY_PROXY_PATH
        self.timeout = timeout
        self._transport = transport

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> ProxyResponse:
        payload = {
            "url": url,
            "method": method.upper(),
            "body": normalize_body(body, headers),
            "headers": headers or {},
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(self.proxy_url, json=payload)
            except httpx.HTTPError as e:
                raise ProxyTransportError(f"Backend proxy unreachable: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            try:
                error_body = response.json()
                detail = error_body.get("error", "") if isinstance(error_body, dict) else ""
            except ValueError:
                detail = response.text
            raise ProxyTransportError(
                f"Backend proxy error: {response.status_code} {response.reason_phrase}"
                + (f" ({detail})" if detail else ""),
                status=response.status_code,
            )

        data = response.json()
        return ProxyResponse(
            status=int(data["status"]),
            status_text=data.get("statusText", ""),
            headers={k.lower(): v for k, v in (data.get("headers") or {}).items()},
            body=data.get("body"),
        )


class DirectFetcher:
    """Fetcher that calls target servers without a relay."""

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self._transport = transport

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> ProxyResponse:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                return await perform_request(
                    client, url, method, headers, normalize_body(body, headers)
                )
            except httpx.HTTPError as e:
                raise ProxyTransportError(f"Request to {url} failed: {e}") from e
