"""Well-known URL construction for OAuth discovery.

Covers RFC 9728 (OAuth Protected Resource Metadata), RFC 8414 (OAuth
Authorization Server Metadata) and OpenID Connect Discovery. Every function
here is pure; fetching is the state machine's job.
"""

import re
from urllib.parse import urlsplit

from .protocols import ProtocolProfile, ProtocolVersion, get_profile

PROTECTED_RESOURCE_PATH = "/.well-known/oauth-protected-resource"
OAUTH_METADATA_PATH = "/.well-known/oauth-authorization-server"
OIDC_METADATA_PATH = "/.well-known/openid-configuration"

_AUTH_PARAM = re.compile(r'([A-Za-z0-9_\-]+)\s*=\s*(?:"((?:[^"\\]|\\.)*)"|([^\s,]+))')


def _split(url: str) -> tuple[str, str]:
    """Split a URL into its origin and its path without trailing slash."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Invalid URL: {url}")
    origin = f"{parts.scheme}://{parts.netloc}"
    return origin, parts.path.rstrip("/")


def build_resource_metadata_url(server_url: str) -> str:
    """Build the RFC 9728 metadata URL for an MCP server.

    The server's path is appended after the well-known prefix when it has one,
    e.g. ``https://rs.example/mcp`` gives
    ``https://rs.example/.well-known/oauth-protected-resource/mcp``.
    """
    origin, path = _split(server_url)
    return f"{origin}{PROTECTED_RESOURCE_PATH}{path}"


def build_auth_server_metadata_urls(
    auth_server_url: str,
    protocol: ProtocolProfile | ProtocolVersion | str,
) -> list[str]:
    """Build the ordered candidate URLs for authorization server metadata.

    Args:
        auth_server_url: Issuer URL taken from the resource metadata
        protocol: Protocol profile or version controlling the ordering

    Returns:
        Candidate URLs to try strictly in order
    """
    profile = protocol if isinstance(protocol, ProtocolProfile) else get_profile(protocol)
    origin, path = _split(auth_server_url)

    if not path:
        return [f"{origin}{OAUTH_METADATA_PATH}", f"{origin}{OIDC_METADATA_PATH}"]

    oauth_inserted = f"{origin}{OAUTH_METADATA_PATH}{path}"
    oidc_inserted = f"{origin}{OIDC_METADATA_PATH}{path}"
    oidc_appended = f"{origin}{path}{OIDC_METADATA_PATH}"

    if profile.root_fallback:
        return [oauth_inserted, f"{origin}{OAUTH_METADATA_PATH}", oidc_inserted, oidc_appended]
    return [oauth_inserted, oidc_inserted, oidc_appended]


def parse_www_authenticate(header: str | None) -> tuple[str | None, dict[str, str]]:
    """Parse a ``WWW-Authenticate`` challenge into its scheme and parameters.

    Only the first challenge is considered. Parameter names are lower-cased.
    """
    if not header:
        return None, {}

    header = header.strip()
    scheme, _, rest = header.partition(" ")
    if "=" in scheme:
        # No scheme, only parameters
        scheme, rest = "", header

    params: dict[str, str] = {}
    for match in _AUTH_PARAM.finditer(rest):
        name = match.group(1).lower()
        value = match.group(2) if match.group(2) is not None else match.group(3)
        value = re.sub(r"\\(.)", r"\1", value)
        params.setdefault(name, value)

    return scheme or None, params


def extract_resource_metadata_url(header: str | None) -> str | None:
    """Return the ``resource_metadata`` URL advertised in a challenge, if any."""
    _, params = parse_www_authenticate(header)
    return params.get("resource_metadata") or None


def extract_scope(header: str | None) -> str | None:
    """Return the ``scope`` advertised in a challenge, if any."""
    _, params = parse_www_authenticate(header)
    return params.get("scope") or None
