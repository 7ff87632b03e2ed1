"""Test doubles and sample documents for the OAuth debugger tests."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import jwt

from oauth_debugger.core.state import FlowStateStore
from oauth_debugger.core.state_machine import OAuthStateMachine
from oauth_debugger.core.steps import FlowStep
from oauth_debugger.proxy.transport import ProxyResponse

SERVER_URL = "https://mcp.example.com/mcp"
AUTH_SERVER_URL = "https://auth.example.com"
RESOURCE_METADATA_URL = "https://mcp.example.com/.well-known/oauth-protected-resource/mcp"
AS_METADATA_URL = "https://auth.example.com/.well-known/oauth-authorization-server"
OIDC_METADATA_URL = "https://auth.example.com/.well-known/openid-configuration"
AUTHORIZATION_ENDPOINT = "https://auth.example.com/authorize"
TOKEN_ENDPOINT = "https://auth.example.com/token"
REGISTRATION_ENDPOINT = "https://auth.example.com/register"
CLIENT_METADATA_URL = "https://client.example.com/oauth/client.json"

WWW_AUTHENTICATE = f'Bearer resource_metadata="{RESOURCE_METADATA_URL}", scope="mcp:read"'


def make_jwt(claims: dict[str, Any]) -> str:
    """Build an unsigned JWT carrying the given claims."""
    return jwt.encode(claims, None, algorithm="none")


def json_response(status: int, body: Any, headers: dict[str, str] | None = None) -> ProxyResponse:
    reasons = {
        200: "OK",
        201: "Created",
        400: "Bad Request",
        401: "Unauthorized",
        404: "Not Found",
        500: "Internal Server Error",
        503: "Service Unavailable",
    }
    return ProxyResponse(
        status=status,
        status_text=reasons.get(status, ""),
        headers={"content-type": "application/json", **(headers or {})},
        body=body,
    )


def resource_metadata(**overrides: Any) -> dict[str, Any]:
    return {
        "resource": SERVER_URL,
        "authorization_servers": [AUTH_SERVER_URL],
        "scopes_supported": ["mcp:read", "mcp:write"],
        "bearer_methods_supported": ["header"],
        **overrides,
    }


def auth_server_metadata(**overrides: Any) -> dict[str, Any]:
    metadata = {
        "issuer": AUTH_SERVER_URL,
        "authorization_endpoint": AUTHORIZATION_ENDPOINT,
        "token_endpoint": TOKEN_ENDPOINT,
        "registration_endpoint": REGISTRATION_ENDPOINT,
        "scopes_supported": ["mcp:read", "mcp:write"],
        "response_types_supported": ["code"],
        "grant_types_supported": ["authorization_code", "refresh_token"],
        "code_challenge_methods_supported": ["S256"],
        "token_endpoint_auth_methods_supported": ["none"],
        "client_id_metadata_document_supported": True,
        **overrides,
    }
    return {k: v for k, v in metadata.items() if v is not None}


ACCESS_TOKEN = make_jwt({"sub": "user-1", "aud": SERVER_URL, "iat": 1700000000, "exp": 1700003600})


@dataclass
class RecordedCall:
    url: str
    method: str
    headers: dict[str, str]
    body: Any


Route = ProxyResponse | Exception | Callable[["RecordedCall"], ProxyResponse]


class FakeFetcher:
    """In-memory fetcher answering from a (method, url) routing table.

    Unknown routes answer 404. A route can be a response, an exception to
    raise, or a callable receiving the recorded call.
    """

    def __init__(self, routes: dict[tuple[str, str], Route] | None = None):
        self.routes: dict[tuple[str, str], Route] = dict(routes or {})
        self.calls: list[RecordedCall] = []

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> ProxyResponse:
        call = RecordedCall(url=url, method=method.upper(), headers=dict(headers or {}), body=body)
        self.calls.append(call)
        route = self.routes.get((call.method, url))
        if route is None:
            return json_response(404, {"error": "not_found"})
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(call)
        return route

    def calls_to(self, url: str, method: str | None = None) -> list[RecordedCall]:
        return [c for c in self.calls if c.url == url and (method is None or c.method == method)]


def mcp_endpoint(call: RecordedCall) -> ProxyResponse:
    """MCP server that demands a bearer token."""
    if call.headers.get("Authorization") == f"Bearer {ACCESS_TOKEN}":
        return json_response(
            200,
            {
                "jsonrpc": "2.0",
                "id": 1,
                "result": {"protocolVersion": "2025-11-25", "capabilities": {"tools": {}}},
            },
        )
    return json_response(
        401, {"error": "invalid_token"}, {"www-authenticate": WWW_AUTHENTICATE}
    )


def happy_routes() -> dict[tuple[str, str], Route]:
    return {
        ("POST", SERVER_URL): mcp_endpoint,
        ("GET", RESOURCE_METADATA_URL): json_response(200, resource_metadata()),
        ("GET", AS_METADATA_URL): json_response(200, auth_server_metadata()),
        ("POST", REGISTRATION_ENDPOINT): json_response(
            201, {"client_id": "registered-client-123", "client_name": "MCP OAuth Debugger"}
        ),
        ("POST", TOKEN_ENDPOINT): json_response(
            200,
            {
                "access_token": ACCESS_TOKEN,
                "token_type": "Bearer",
                "expires_in": 3600,
                "refresh_token": "refresh-token-value-0123456789abcdef",
                "scope": "mcp:read",
            },
        ),
    }


async def advance_to(
    machine: OAuthStateMachine, store: FlowStateStore, target: FlowStep, max_steps: int = 30
) -> None:
    """Run steps until the flow reaches ``target``, failing on any error."""
    for _ in range(max_steps):
        if store.state.current_step == target:
            return
        await machine.proceed_to_next_step()
        error = store.state.error
        assert error is None or error.startswith("Warning"), error
    raise AssertionError(f"Flow did not reach {target.value}; stuck at {store.state.current_step}")
