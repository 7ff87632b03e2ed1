"""Client registration strategies.

Each strategy decides how the flow obtains its ``client_id`` once the
authorization server metadata is known:

- DCR (RFC 7591) registers a public client at ``registration_endpoint``
- CIMD presents an HTTPS URL as ``client_id``; the authorization server
  fetches the metadata document behind it during authorization
- Pre-registered uses a configured (or synthetic) client id as-is
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..core.config import DcrFailurePolicy, FlowConfig, validate_https_url
from ..core.history import add_info_log, push_request
from ..core.requests import execute_recorded
from ..core.state import FlowState, HttpRequest
from ..core.steps import FlowStep, StepResult
from ..proxy.client import Fetcher
from ..utils.errors import InvalidClientMetadataUrlError, RegistrationError
from ..utils.logging_config import truncate_secret
from .discovery import extract_scope
from .protocols import ProtocolProfile, RegistrationStrategy

logger = logging.getLogger(__name__)

# Used when the authorization server has no registration endpoint
DEMO_CLIENT_ID = "mock-client-id-for-demo"
# Used when registration fails or no pre-registered id is configured
FALLBACK_CLIENT_ID = "preregistered-client-id"

StepHandler = Callable[[FlowState], Awaitable[StepResult]]


@dataclass
class ClientCredentials:
    """Client identity produced by a registration strategy."""

    client_id: str
    client_secret: str | None = None
    method: str = RegistrationStrategy.PREREGISTERED.value

    def as_updates(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "registration_method": self.method,
        }


def select_scopes(state: FlowState, custom_scopes: str | None = None) -> str | None:
    """Pick the scopes to request.

    Precedence: explicit scopes, the challenge's ``scope`` parameter, the
    resource's ``scopes_supported``, then the authorization server's.
    """
    if custom_scopes and custom_scopes.strip():
        return custom_scopes.strip()
    challenged = extract_scope(state.www_authenticate_header)
    if challenged:
        return challenged
    if state.resource_metadata and state.resource_metadata.scopes_supported:
        return " ".join(state.resource_metadata.scopes_supported)
    metadata = state.authorization_server_metadata
    if metadata and metadata.scopes_supported:
        return " ".join(metadata.scopes_supported)
    return None


def build_client_metadata(
    client_name: str,
    redirect_uris: list[str],
    scope: str | None = None,
) -> dict[str, Any]:
    """Build the RFC 7591 client metadata sent during registration."""
    metadata: dict[str, Any] = {
        "client_name": client_name,
        "redirect_uris": redirect_uris,
        "grant_types": ["authorization_code", "refresh_token"],
        "response_types": ["code"],
        "token_endpoint_auth_method": "none",
    }
    if scope:
        metadata["scope"] = scope
    return metadata


def build_client_metadata_document(
    client_id_url: str,
    redirect_uris: list[str],
    client_name: str,
) -> dict[str, Any]:
    """Build the Client ID Metadata Document hosted at ``client_id_url``.

    The document's ``client_id`` must equal the URL it is served from.
    """
    return {
        "client_id": client_id_url,
        "client_name": client_name,
        "redirect_uris": redirect_uris,
        "grant_types": ["authorization_code", "refresh_token"],
        "response_types": ["code"],
        "token_endpoint_auth_method": "none",
    }


class RegistrationHandler(ABC):
    """Base class for registration strategies."""

    strategy: RegistrationStrategy

    def __init__(self, config: FlowConfig, profile: ProtocolProfile, fetcher: Fetcher):
        self.config = config
        self.profile = profile
        self.fetcher = fetcher

    @abstractmethod
    async def begin(self, state: FlowState) -> StepResult:
        """Start registration once authorization server metadata is known."""

    def step_handlers(self) -> dict[FlowStep, StepHandler]:
        """Handlers for the strategy's own steps."""
        return {}

    def _continue(self, updates: dict[str, Any]) -> StepResult:
        return StepResult(updates, continue_after=self.config.continuation_delay)


class PreregisteredClient(RegistrationHandler):
    """Use a statically supplied client id, without any network call."""

    strategy = RegistrationStrategy.PREREGISTERED

    async def begin(self, state: FlowState) -> StepResult:
        credentials = ClientCredentials(
            client_id=self.config.client_id or FALLBACK_CLIENT_ID,
            client_secret=self.config.client_secret,
            method=self.strategy.value,
        )
        if not self.config.client_id:
            logger.warning(f"No pre-registered client id configured, using {FALLBACK_CLIENT_ID}")

        info_logs = add_info_log(
            state.info_logs,
            "preregistered",
            "Pre-registered Client",
            {
                "client_id": credentials.client_id,
                "client_secret": truncate_secret(credentials.client_secret) or "(public client)",
            },
        )
        return self._continue(
            {
                **credentials.as_updates(),
                "current_step": FlowStep.RECEIVED_CLIENT_CREDENTIALS,
                "info_logs": info_logs,
            }
        )


class DynamicClientRegistration(RegistrationHandler):
    """Register a public client with the authorization server (RFC 7591)."""

    strategy = RegistrationStrategy.DCR

    async def begin(self, state: FlowState) -> StepResult:
        metadata = state.authorization_server_metadata
        if metadata is None or not metadata.registration_endpoint:
            logger.warning(
                f"No registration endpoint advertised, using {DEMO_CLIENT_ID}"
            )
            info_logs = add_info_log(
                state.info_logs,
                "dcr",
                "Dynamic Client Registration",
                {
                    "skipped": "Authorization server has no registration_endpoint",
                    "client_id": DEMO_CLIENT_ID,
                },
                level="warning",
            )
            return self._continue(
                {
                    "current_step": FlowStep.RECEIVED_CLIENT_CREDENTIALS,
                    "client_id": DEMO_CLIENT_ID,
                    "client_secret": None,
                    "registration_method": "fallback",
                    "info_logs": info_logs,
                }
            )

        info_logs = state.info_logs
        advertised = metadata.token_endpoint_auth_methods_supported
        if advertised is not None and not metadata.supports_public_clients():
            logger.warning(
                f"Authorization server does not list 'none' in "
                f"token_endpoint_auth_methods_supported: {advertised}"
            )
            info_logs = add_info_log(
                info_logs,
                "dcr-auth-methods",
                "Public Client Support",
                {
                    "warning": "Server may reject a public client without a secret",
                    "token_endpoint_auth_methods_supported": advertised,
                },
                level="warning",
            )

        request = self.build_request(state)
        return self._continue(
            {
                "current_step": FlowStep.REQUEST_CLIENT_REGISTRATION,
                "last_request": request,
                "last_response": None,
                "http_history": push_request(
                    state.http_history, FlowStep.REQUEST_CLIENT_REGISTRATION, request
                ),
                "info_logs": info_logs,
            }
        )

    def build_request(self, state: FlowState) -> HttpRequest:
        metadata = state.authorization_server_metadata
        if metadata is None or not metadata.registration_endpoint:
            raise RegistrationError("No registration endpoint available")
        return HttpRequest(
            method="POST",
            url=metadata.registration_endpoint,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            body=build_client_metadata(
                self.config.client_name,
                [self.config.redirect_url],
                select_scopes(state, self.config.custom_scopes),
            ),
        )

    def step_handlers(self) -> dict[FlowStep, StepHandler]:
        return {FlowStep.REQUEST_CLIENT_REGISTRATION: self.register}

    async def register(self, state: FlowState) -> StepResult:
        """Send the registration request and capture the issued credentials."""
        request = self.build_request(state)
        response, history, transport_error = await execute_recorded(
            self.fetcher, state.http_history, FlowStep.REQUEST_CLIENT_REGISTRATION, request
        )
        recorded = {"http_history": history, "last_request": request, "last_response": response}

        body = response.body if isinstance(response.body, dict) else {}
        if transport_error is None and response.ok and body.get("client_id"):
            credentials = ClientCredentials(
                client_id=body["client_id"],
                client_secret=body.get("client_secret"),
                method=self.strategy.value,
            )
            logger.info(f"Registered client: {credentials.client_id}")
            info_logs = add_info_log(
                state.info_logs,
                "dcr",
                "Dynamic Client Registration",
                {
                    "client_id": credentials.client_id,
                    "client_secret": truncate_secret(credentials.client_secret)
                    or "(public client)",
                    "client_name": body.get("client_name", self.config.client_name),
                },
            )
            return self._continue(
                {
                    **recorded,
                    **credentials.as_updates(),
                    "current_step": FlowStep.RECEIVED_CLIENT_CREDENTIALS,
                    "info_logs": info_logs,
                }
            )

        if transport_error is not None:
            reason = f"Client registration failed: {transport_error}"
        elif response.ok:
            reason = "Registration response missing 'client_id'"
        else:
            reason = f"Dynamic Client Registration failed ({response.status})"

        if self.config.dcr_failure_policy == DcrFailurePolicy.FAIL:
            raise RegistrationError(reason, recorded)

        logger.warning(f"{reason}. Using fallback client ID {FALLBACK_CLIENT_ID}")
        return self._continue(
            {
                **recorded,
                "current_step": FlowStep.RECEIVED_CLIENT_CREDENTIALS,
                "client_id": FALLBACK_CLIENT_ID,
                "client_secret": None,
                "registration_method": "fallback",
                "error": f"{reason}. Using fallback client ID.",
            }
        )


class ClientIdMetadataDocument(RegistrationHandler):
    """Use an HTTPS URL as ``client_id`` (Client ID Metadata Documents).

    No request is made by the client; the authorization server is expected to
    fetch the document while handling the authorization request.
    """

    strategy = RegistrationStrategy.CIMD

    def __init__(self, config: FlowConfig, profile: ProtocolProfile, fetcher: Fetcher):
        super().__init__(config, profile, fetcher)
        try:
            self.client_id_url = validate_https_url(config.client_metadata_url)
        except ValueError as e:
            raise InvalidClientMetadataUrlError(config.client_metadata_url) from e
        if self.client_id_url is None:
            raise InvalidClientMetadataUrlError(None)

    def document(self) -> dict[str, Any]:
        return build_client_metadata_document(
            self.client_id_url, [self.config.redirect_url], self.config.client_name
        )

    async def begin(self, state: FlowState) -> StepResult:
        metadata = state.authorization_server_metadata
        supported = bool(metadata and metadata.client_id_metadata_document_supported)

        data: dict[str, Any] = {
            "client_id": self.client_id_url,
            "client_id_metadata_document_supported": supported,
        }
        level = "info"
        if not supported:
            logger.warning("Authorization server does not advertise CIMD support")
            data["warning"] = (
                "Authorization server metadata does not set "
                "client_id_metadata_document_supported; authorization may fail"
            )
            level = "warning"

        return self._continue(
            {
                "current_step": FlowStep.CIMD_PREPARE,
                "client_id": self.client_id_url,
                "client_secret": None,
                "registration_method": self.strategy.value,
                "info_logs": add_info_log(
                    state.info_logs, "cimd", "Client ID Metadata Document", data, level
                ),
            }
        )

    def step_handlers(self) -> dict[FlowStep, StepHandler]:
        return {
            FlowStep.CIMD_PREPARE: self.expect_fetch,
            FlowStep.CIMD_FETCH_REQUEST: self.expect_validation,
        }

    async def expect_fetch(self, state: FlowState) -> StepResult:
        """Record that the authorization server will fetch the document."""
        info_logs = add_info_log(
            state.info_logs,
            "cimd-fetch",
            "Expected Metadata Document Fetch",
            {
                "url": self.client_id_url,
                "method": "GET",
                "expected_document": self.document(),
            },
        )
        return self._continue(
            {"current_step": FlowStep.CIMD_FETCH_REQUEST, "info_logs": info_logs}
        )

    async def expect_validation(self, state: FlowState) -> StepResult:
        """Record the checks the authorization server applies to the document."""
        info_logs = add_info_log(
            state.info_logs,
            "cimd-validation",
            "Expected Metadata Document Validation",
            {
                "client_id_matches_url": self.client_id_url,
                "redirect_uri_listed": self.config.redirect_url,
                "client_name": self.config.client_name,
            },
        )
        return self._continue(
            {"current_step": FlowStep.CIMD_METADATA_RESPONSE, "info_logs": info_logs}
        )


_HANDLERS: dict[RegistrationStrategy, type[RegistrationHandler]] = {
    RegistrationStrategy.CIMD: ClientIdMetadataDocument,
    RegistrationStrategy.DCR: DynamicClientRegistration,
    RegistrationStrategy.PREREGISTERED: PreregisteredClient,
}


def create_registration_handler(
    strategy: RegistrationStrategy | str,
    config: FlowConfig,
    profile: ProtocolProfile,
    fetcher: Fetcher,
) -> RegistrationHandler:
    """Instantiate the handler class for a strategy."""
    return _HANDLERS[RegistrationStrategy(strategy)](config, profile, fetcher)
