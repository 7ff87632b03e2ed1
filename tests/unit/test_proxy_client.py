"""Tests for the relay client, the direct fetcher and the outbound transport."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from oauth_debugger.proxy.client import DirectFetcher, RelayProxyClient, normalize_body
from oauth_debugger.proxy.transport import USER_AGENT, encode_body, validate_target_url
from oauth_debugger.utils.errors import ProxyTransportError

RELAY_URL = "http://localhost:6274"


class TestValidateTargetUrl:
    """Tests for relay target validation."""

    def test_accepts_http_and_https(self) -> None:
        """Test that absolute http(s) URLs pass."""
        assert validate_target_url("https://as.example/token") == "https://as.example/token"
        assert validate_target_url("http://localhost:3000/mcp") == "http://localhost:3000/mcp"

    @pytest.mark.parametrize(
        ("url", "message"),
        [
            (None, "Missing url parameter"),
            ("", "Missing url parameter"),
            ("not a url", "Invalid URL format"),
            ("ftp://files.example/x", "Invalid protocol"),
            ("file:///etc/passwd", "Invalid URL format"),
        ],
    )
    def test_rejects_bad_targets(self, url: str | None, message: str) -> None:
        """Test the error message for each kind of bad target."""
        with pytest.raises(ValueError, match=message):
            validate_target_url(url)


class TestBodyEncoding:
    """Tests for request body serialization."""

    def test_form_body(self) -> None:
        """Test that dict bodies are form-encoded for form content types."""
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        content = encode_body("POST", headers, {"grant_type": "authorization_code", "x": None})
        assert content == b"grant_type=authorization_code"

    def test_json_default_content_type(self) -> None:
        """Test that a body without content type is sent as JSON."""
        headers: dict[str, str] = {}
        content = encode_body("POST", headers, {"a": 1})
        assert json.loads(content) == {"a": 1}
        assert headers["Content-Type"] == "application/json"

    def test_get_has_no_body(self) -> None:
        """Test that GET requests never carry a body."""
        assert encode_body("GET", {}, {"a": 1}) is None

    def test_normalize_form_string(self) -> None:
        """Test that form-encoded text becomes a dict for the relay."""
        headers = {"content-type": "application/x-www-form-urlencoded"}
        assert normalize_body("a=1&b=", headers) == {"a": "1", "b": ""}

    def test_normalize_json_string(self) -> None:
        """Test that JSON text is parsed and other text kept."""
        assert normalize_body('{"a": 1}', {"Content-Type": "application/json"}) == {"a": 1}
        assert normalize_body("plain", {"Content-Type": "text/plain"}) == "plain"
        assert normalize_body({"a": 1}, None) == {"a": 1}


class TestRelayProxyClient:
    """Tests for RelayProxyClient."""

    @pytest.mark.asyncio
    async def test_posts_envelope_and_returns_target_response(self) -> None:
        """Test the relay envelope and the mapping of the relay reply."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "status": 401,
                    "statusText": "Unauthorized",
                    "headers": {"WWW-Authenticate": 'Bearer realm="mcp"'},
                    "body": {"error": "invalid_token"},
                },
            )

        client = RelayProxyClient(RELAY_URL + "/", transport=httpx.MockTransport(handler))
        response = await client.fetch(
            "https://mcp.example.com/mcp",
            method="post",
            headers={"Content-Type": "application/json"},
            body='{"jsonrpc": "2.0"}',
        )

        assert str(seen[0].url) == "http://localhost:6274/api/mcp/oauth/debug/proxy"
        envelope = json.loads(seen[0].content)
        assert envelope == {
            "url": "https://mcp.example.com/mcp",
            "method": "POST",
            "body": {"jsonrpc": "2.0"},
            "headers": {"Content-Type": "application/json"},
        }
        assert response.status == 401
        assert not response.ok
        assert response.status_text == "Unauthorized"
        assert response.headers["www-authenticate"] == 'Bearer realm="mcp"'
        assert response.body == {"error": "invalid_token"}

    @pytest.mark.asyncio
    async def test_relay_error_raises_transport_error(self) -> None:
        """Test that a relay failure is distinct from a target response."""
        transport = httpx.MockTransport(
            lambda request: httpx.Response(500, json={"error": "connect timeout"})
        )
        client = RelayProxyClient(RELAY_URL, transport=transport)

        with pytest.raises(ProxyTransportError) as exc_info:
            await client.fetch("https://as.example/token", method="POST", body={})
        assert exc_info.value.status == 500
        assert "Backend proxy error: 500" in str(exc_info.value)
        assert "connect timeout" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unreachable_relay(self) -> None:
        """Test that connection failures become transport errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        client = RelayProxyClient(RELAY_URL, transport=httpx.MockTransport(handler))
        with pytest.raises(ProxyTransportError, match="unreachable"):
            await client.fetch("https://as.example/.well-known/oauth-authorization-server")


class TestDirectFetcher:
    """Tests for DirectFetcher."""

    @pytest.mark.asyncio
    async def test_sends_form_body_and_user_agent(self) -> None:
        """Test that a form body is encoded and the response parsed."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(400, json={"error": "invalid_grant"})

        fetcher = DirectFetcher(transport=httpx.MockTransport(handler))
        response = await fetcher.fetch(
            "https://as.example/token",
            method="POST",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            body={"grant_type": "authorization_code", "code": "abc"},
        )

        assert parse_qs(seen[0].content.decode()) == {
            "grant_type": ["authorization_code"],
            "code": ["abc"],
        }
        assert seen[0].headers["user-agent"] == USER_AGENT
        assert response.status == 400
        assert response.status_text == "Bad Request"
        assert response.body == {"error": "invalid_grant"}

    @pytest.mark.asyncio
    async def test_text_body_is_kept(self) -> None:
        """Test that a non-JSON response body is returned as text."""
        transport = httpx.MockTransport(lambda request: httpx.Response(404, text="Not here"))
        response = await DirectFetcher(transport=transport).fetch("https://rs.example/x")
        assert response.body == "Not here"

    @pytest.mark.asyncio
    async def test_network_failure(self) -> None:
        """Test that connection failures become transport errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Name resolution failed", request=request)

        fetcher = DirectFetcher(transport=httpx.MockTransport(handler))
        with pytest.raises(ProxyTransportError, match="rs.example"):
            await fetcher.fetch("https://rs.example/mcp", method="POST", body={})
