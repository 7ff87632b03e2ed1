"""End-to-end flow through the relay server and the callback receiver.

The state machine talks to a real relay application (over httpx.ASGITransport),
whose outbound calls hit a mock MCP server and authorization server. The
authorization redirect is delivered through the aiohttp callback app.
"""

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from aiohttp import test_utils

from oauth_debugger.callback import CallbackServer
from oauth_debugger.core.config import FlowConfig, Settings
from oauth_debugger.core.factory import create_oauth_state_machine
from oauth_debugger.core.state import FlowStateStore
from oauth_debugger.core.steps import FlowStep
from oauth_debugger.oauth.pkce import generate_code_challenge
from oauth_debugger.proxy.client import RelayProxyClient
from oauth_debugger.proxy.server import create_app

MCP_URL = "https://mcp.example.com/mcp"
ISSUER = "https://auth.example.com"


class MockOAuthServers:
    """MCP server plus authorization server with DCR and PKCE verification."""

    def __init__(self):
        self.issued_codes: dict[str, str] = {}
        self.token_requests = 0

    def issue_code(self, code: str, code_challenge: str) -> None:
        self.issued_codes[code] = code_challenge

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url).split("?")[0]
        if url == MCP_URL:
            if request.headers.get("authorization") == "Bearer opaque-access-token":
                return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {}})
            return httpx.Response(
                401,
                headers={
                    "WWW-Authenticate": 'Bearer resource_metadata="https://mcp.example.com'
                    '/.well-known/oauth-protected-resource/mcp"'
                },
            )
        if url == "https://mcp.example.com/.well-known/oauth-protected-resource/mcp":
            return httpx.Response(
                200, json={"resource": MCP_URL, "authorization_servers": [ISSUER]}
            )
        if url == f"{ISSUER}/.well-known/oauth-authorization-server":
            return httpx.Response(
                200,
                json={
                    "issuer": ISSUER,
                    "authorization_endpoint": f"{ISSUER}/authorize",
                    "token_endpoint": f"{ISSUER}/token",
                    "registration_endpoint": f"{ISSUER}/register",
                    "response_types_supported": ["code"],
                    "code_challenge_methods_supported": ["S256"],
                },
            )
        if url == f"{ISSUER}/register":
            return httpx.Response(201, json={"client_id": "relay-client"})
        if url == f"{ISSUER}/token":
            return self._token(request)
        return httpx.Response(404)

    def _token(self, request: httpx.Request) -> httpx.Response:
        self.token_requests += 1
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        expected_challenge = self.issued_codes.pop(form.get("code"), None)
        if expected_challenge is None:
            return httpx.Response(400, json={"error": "invalid_grant"})
        if generate_code_challenge(form["code_verifier"]) != expected_challenge:
            return httpx.Response(
                400, json={"error": "invalid_grant", "error_description": "PKCE mismatch"}
            )
        if form.get("resource") != MCP_URL:
            return httpx.Response(400, json={"error": "invalid_target"})
        return httpx.Response(
            200, json={"access_token": "opaque-access-token", "token_type": "Bearer"}
        )


@pytest.mark.asyncio
async def test_full_flow_through_relay_and_callback() -> None:
    """Test discovery, DCR, callback delivery, PKCE exchange and replay end to end."""
    servers = MockOAuthServers()
    relay = create_app(Settings(_env_file=None), transport=httpx.MockTransport(servers))
    fetcher = RelayProxyClient(
        "http://relay.test", transport=httpx.ASGITransport(app=relay)
    )

    store = FlowStateStore()
    machine = create_oauth_state_machine(
        FlowConfig(server_url=MCP_URL, protocol_version="2025-06-18", code_exchange_delay=0),
        fetcher,
        store.get_state,
        store.update_state,
        auto_continue=True,
    )

    for _ in range(20):
        if store.state.current_step == FlowStep.AUTHORIZATION_REQUEST:
            break
        await machine.proceed_to_next_step()
        await machine.session.wait_idle()
    assert store.state.current_step == FlowStep.AUTHORIZATION_REQUEST
    assert store.state.client_id == "relay-client"

    # The user approves; the authorization server redirects back with a code
    params = parse_qs(urlsplit(store.state.authorization_url).query)
    servers.issue_code("code-from-as", params["code_challenge"][0])

    callback = CallbackServer("http://localhost:8889/callback", machine.submit_authorization_code)
    async with test_utils.TestClient(test_utils.TestServer(callback.create_app())) as http:
        redirect = f"/callback?code=code-from-as&state={params['state'][0]}"
        first = await http.get(redirect)
        assert first.status == 200
        duplicate = await http.get(redirect)
        assert duplicate.status == 400

    await machine.session.wait_idle()
    assert store.state.current_step == FlowStep.RECEIVED_ACCESS_TOKEN
    assert servers.token_requests == 1

    await machine.proceed_to_next_step()
    await machine.session.wait_idle()
    assert store.state.current_step == FlowStep.COMPLETE
    assert store.state.error is None
