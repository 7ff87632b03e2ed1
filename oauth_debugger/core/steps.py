"""Protocol step enumeration, ordering and operator-facing descriptions.

Step values are stable identifiers consumed by renderers; do not rename them.
"""

import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FlowStep(str, Enum):
    """Steps of the MCP authorization flow, in protocol order."""

    IDLE = "idle"
    REQUEST_WITHOUT_TOKEN = "request_without_token"
    RECEIVED_401_UNAUTHORIZED = "received_401_unauthorized"
    REQUEST_RESOURCE_METADATA = "request_resource_metadata"
    RECEIVED_RESOURCE_METADATA = "received_resource_metadata"
    REQUEST_AUTHORIZATION_SERVER_METADATA = "request_authorization_server_metadata"
    RECEIVED_AUTHORIZATION_SERVER_METADATA = "received_authorization_server_metadata"
    CIMD_PREPARE = "cimd_prepare"
    CIMD_FETCH_REQUEST = "cimd_fetch_request"
    CIMD_METADATA_RESPONSE = "cimd_metadata_response"
    REQUEST_CLIENT_REGISTRATION = "request_client_registration"
    RECEIVED_CLIENT_CREDENTIALS = "received_client_credentials"
    GENERATE_PKCE_PARAMETERS = "generate_pkce_parameters"
    AUTHORIZATION_REQUEST = "authorization_request"
    RECEIVED_AUTHORIZATION_CODE = "received_authorization_code"
    TOKEN_REQUEST = "token_request"
    RECEIVED_ACCESS_TOKEN = "received_access_token"
    AUTHENTICATED_MCP_REQUEST = "authenticated_mcp_request"
    COMPLETE = "complete"


STEP_ORDER: list[FlowStep] = list(FlowStep)


@dataclass
class StepResult:
    """Outcome of one step handler.

    Attributes:
        updates: Partial flow state to write
        continue_after: Suggested delay in seconds before the next step runs
            on its own, or None when the operator must advance the flow
    """

    updates: dict[str, Any]
    continue_after: float | None = None

    @property
    def next_step(self) -> "FlowStep | None":
        return self.updates.get("current_step")


@dataclass(frozen=True)
class StepInfo:
    """Operator-facing description of a step."""

    title: str
    summary: str
    teachable_moments: tuple[str, ...] = field(default_factory=tuple)
    tips: tuple[str, ...] = field(default_factory=tuple)


STEP_METADATA: dict[FlowStep, StepInfo] = {
    FlowStep.IDLE: StepInfo(
        "Idle",
        "The debugger is ready to start the OAuth sequence.",
        ("Review the server selection and OAuth configuration before starting.",),
    ),
    FlowStep.REQUEST_WITHOUT_TOKEN: StepInfo(
        "Initial MCP Request",
        "An unauthenticated initialize request checks whether OAuth is required.",
        (
            "OAuth flows usually begin with a protected resource request that deliberately "
            "lacks credentials.",
            "The response determines which discovery path the client must follow.",
        ),
    ),
    FlowStep.RECEIVED_401_UNAUTHORIZED: StepInfo(
        "401 Unauthorized",
        "The MCP server indicates OAuth is required and often provides discovery hints "
        "in WWW-Authenticate.",
        ("Look for the resource_metadata URL or scope in the header.",),
        ("A 200 instead of a 401 means the server allows anonymous access.",),
    ),
    FlowStep.REQUEST_RESOURCE_METADATA: StepInfo(
        "Request Resource Metadata",
        "RFC 9728 resource metadata names the authorization server to use.",
        (
            "Protected resource metadata links the resource to one or more authorization servers.",
            "If this step fails, check the MCP server's well-known configuration and headers.",
        ),
    ),
    FlowStep.RECEIVED_RESOURCE_METADATA: StepInfo(
        "Resource Metadata Received",
        "The response describes supported authorization servers, scopes and bearer methods.",
        ("Validate that the authorization server URL matches the target environment.",),
    ),
    FlowStep.REQUEST_AUTHORIZATION_SERVER_METADATA: StepInfo(
        "Fetch Authorization Server Metadata",
        "The authorization server's well-known endpoint (RFC 8414 or OIDC) is queried.",
        (
            "Protocol versions prioritize different discovery URLs (path insertion, appending).",
            "Failure here often points to a misconfigured issuer URL.",
        ),
    ),
    FlowStep.RECEIVED_AUTHORIZATION_SERVER_METADATA: StepInfo(
        "Authorization Server Metadata Received",
        "The authorization, token and optional registration endpoints are validated.",
        (
            "Confirm PKCE methods include S256 for modern flows.",
            "Check available scopes and grant types.",
        ),
    ),
    FlowStep.CIMD_PREPARE: StepInfo(
        "Prepare CIMD",
        "The client prepares to use a Client ID Metadata Document (CIMD).",
        ("CIMD replaces static client IDs with an HTTPS URL that hosts client metadata.",),
    ),
    FlowStep.CIMD_FETCH_REQUEST: StepInfo(
        "Authorization Server Fetches CIMD",
        "The authorization server fetches the client's metadata document over HTTPS.",
        ("TLS or hosting problems with the metadata document show up here.",),
    ),
    FlowStep.CIMD_METADATA_RESPONSE: StepInfo(
        "CIMD Validated",
        "The authorization server is expected to have read the client metadata document.",
        ("Redirect URIs declared in the document must match the environment under test.",),
    ),
    FlowStep.REQUEST_CLIENT_REGISTRATION: StepInfo(
        "Dynamic Client Registration",
        "Client metadata is submitted to register a public client.",
        (
            "Dynamic registration is optional in draft flows but required in earlier "
            "revisions unless the client is pre-registered.",
            "HTTP 4xx responses indicate metadata validation failures.",
        ),
    ),
    FlowStep.RECEIVED_CLIENT_CREDENTIALS: StepInfo(
        "Client Credentials Ready",
        "The client_id (and optional client_secret) is stored for the rest of the flow.",
        ("Public clients receive no secret and rely on PKCE instead.",),
    ),
    FlowStep.GENERATE_PKCE_PARAMETERS: StepInfo(
        "Generate PKCE Parameters",
        "A code verifier and challenge protect the authorization code exchange.",
        ("PKCE S256 is required in draft revisions and strongly recommended everywhere else.",),
    ),
    FlowStep.AUTHORIZATION_REQUEST: StepInfo(
        "Authorization Request Ready",
        "The authorization URL is composed; waiting for the user to approve access.",
        ("Inspect the URL to make sure scopes and redirect URI are as expected.",),
    ),
    FlowStep.RECEIVED_AUTHORIZATION_CODE: StepInfo(
        "Authorization Code Received",
        "The user completed consent and the returned authorization code was captured.",
        ("State mismatches usually indicate concurrent authorizations or stale windows.",),
    ),
    FlowStep.TOKEN_REQUEST: StepInfo(
        "Exchange Authorization Code",
        "The token endpoint is called with the authorization code and PKCE verifier.",
        ("Token endpoint errors often reveal scope or client configuration problems.",),
    ),
    FlowStep.RECEIVED_ACCESS_TOKEN: StepInfo(
        "Tokens Received",
        "Access and refresh tokens are stored for the authenticated MCP request.",
        ("Check the token type and expiry.",),
    ),
    FlowStep.AUTHENTICATED_MCP_REQUEST: StepInfo(
        "Authenticated MCP Request",
        "The MCP initialize call is retried with the freshly issued access token.",
        ("This confirms the MCP server accepts the token and returns capabilities.",),
    ),
    FlowStep.COMPLETE: StepInfo(
        "Flow Complete",
        "The server was verified with OAuth credentials.",
        ("Reset to run the flow again.",),
    ),
}


def get_step_info(step: FlowStep | str) -> StepInfo:
    """Return the description of a step, with a generic fallback."""
    try:
        return STEP_METADATA[FlowStep(step)]
    except ValueError:
        return StepInfo(str(step), "No additional information available for this step.")


def get_step_index(step: FlowStep | str) -> int:
    """Return the position of a step in protocol order (unknown steps sort last)."""
    try:
        return STEP_ORDER.index(FlowStep(step))
    except ValueError:
        return sys.maxsize
