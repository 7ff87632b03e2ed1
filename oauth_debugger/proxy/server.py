"""FastAPI relay server for the OAuth debugger.

Authorization servers do not grant CORS to a debugging front end, so every
OAuth and MCP call of a browser-hosted flow is relayed through this server:

    POST /api/mcp/oauth/debug/proxy   {"url", "method", "headers", "body"}
    GET  /api/mcp/oauth/metadata?url= Fetch a metadata document
    GET  /oauth/client-metadata.json  Client ID Metadata Document (when configured)
    GET  /health

Run with:
    oauth-debugger relay
"""

import logging

import httpx
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.config import Settings
from ..core.config import settings as default_settings
from ..oauth.registration import build_client_metadata_document
from .models import ErrorResponse, HealthResponse, ProxyRequest, ProxyResult
from .transport import perform_request, validate_target_url

logger = logging.getLogger(__name__)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(ErrorResponse(error=message).model_dump(), status_code=status_code)


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create the relay application.

    Args:
        settings: Settings to use (defaults to the global settings)
        transport: Optional httpx transport for outbound calls (used by tests)
    """
    settings = settings or default_settings

    app = FastAPI(
        title="MCP OAuth Debugger Relay",
        description="Relays OAuth and MCP requests for the step-by-step debugger",
        version=__version__,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.relay_allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    def client() -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=settings.request_timeout, transport=transport)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(version=__version__)

    @app.post(
        "/api/mcp/oauth/debug/proxy",
        response_model=ProxyResult,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def debug_proxy(request: ProxyRequest):
        try:
            url = validate_target_url(request.url)
        except ValueError as e:
            return _error(str(e), 400)

        method = request.method.upper()
        logger.info(f"Proxy {method} {url}")
        try:
            async with client() as http:
                response = await perform_request(
                    http, url, method, request.headers or {}, request.body
                )
        except Exception as e:
            logger.error(f"Proxy {method} {url} failed: {e}")
            return _error(str(e) or "Unknown error occurred", 500)

        logger.info(f"Proxy {method} {url} -> {response.status} {response.status_text}")
        return ProxyResult(
            status=response.status,
            status_text=response.status_text,
            headers=response.headers,
            body=response.body,
        )

    @app.get("/api/mcp/oauth/metadata", responses={400: {"model": ErrorResponse}})
    async def fetch_metadata(url: str | None = Query(default=None)):
        try:
            url = validate_target_url(url)
        except ValueError as e:
            return _error(str(e), 400)

        try:
            async with client() as http:
                response = await perform_request(http, url, "GET", {"Accept": "application/json"})
        except Exception as e:
            logger.error(f"Metadata fetch from {url} failed: {e}")
            return _error(str(e) or "Unknown error occurred", 500)

        if not response.ok:
            return _error(
                f"Failed to fetch OAuth metadata: {response.status} {response.status_text}",
                response.status,
            )
        return JSONResponse(response.body)

    @app.get("/oauth/client-metadata.json", responses={404: {"model": ErrorResponse}})
    async def client_metadata_document():
        if not settings.client_metadata_url:
            return _error("No client metadata URL configured", 404)
        return build_client_metadata_document(
            settings.client_metadata_url, [settings.redirect_url], settings.client_name
        )

    return app


app = create_app()
