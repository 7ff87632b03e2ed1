"""Step-by-step driver for the MCP OAuth authorization flow.

Each call to :meth:`OAuthStateMachine.proceed_to_next_step` runs exactly one
handler from a lookup table keyed by the current step. Handlers never touch
the state directly: they receive a snapshot and return a :class:`StepResult`
whose updates the machine writes through the caller's update callback.

Two handler shapes exist. Request-construction handlers record a pending
request in the history and ask for a short continuation so observers can see
it before it is sent. Request-execution handlers send the pending request,
validate the reply and pick the next step.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import fields
from typing import Any
from urllib.parse import urlencode

from .. import __version__
from ..oauth.discovery import (
    build_auth_server_metadata_urls,
    build_resource_metadata_url,
    extract_resource_metadata_url,
    parse_www_authenticate,
)
from ..oauth.tokens import describe_jwt
from ..oauth.metadata import AuthorizationServerMetadata, ResourceMetadata
from ..oauth.pkce import generate_pkce_pair, generate_state
from ..oauth.protocols import ProtocolProfile
from ..oauth.registration import RegistrationHandler, select_scopes
from ..proxy.client import Fetcher
from ..utils.errors import (
    AuthenticatedRequestError,
    FlowStepError,
    MetadataValidationError,
    PKCECapabilityError,
    StateMismatchError,
    TokenExchangeError,
)
from ..utils.logging_config import truncate_secret
from .config import FlowConfig
from .history import add_info_log, push_request
from .requests import execute_recorded
from .session import FlowSession
from .state import FlowState, HttpRequest, HttpResponse
from .steps import FlowStep, StepResult, get_step_index

logger = logging.getLogger(__name__)

StepHandler = Callable[[FlowState], Awaitable[StepResult]]
StateGetter = Callable[[], FlowState]
StateUpdater = Callable[[dict[str, Any]], None]

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"}
MCP_ACCEPT = "application/json, text/event-stream"

FLOW_RESET_MESSAGE = "Flow was reset. Please start a new authorization by clicking 'Next Step'."
STATE_MISMATCH_MESSAGE = (
    "Invalid state parameter - this authorization code is from a previous flow. "
    "Please try again."
)
MISSING_CODE_MESSAGE = (
    "Authorization code is required. Please paste the code you received from the "
    "authorization server."
)

# Steps at which an authorization code may be delivered
_CODE_STEPS = {FlowStep.AUTHORIZATION_REQUEST, FlowStep.RECEIVED_AUTHORIZATION_CODE}


class OAuthStateMachine:
    """Drives one authorization flow for one protocol profile and registration strategy."""

    def __init__(
        self,
        config: FlowConfig,
        profile: ProtocolProfile,
        registration: RegistrationHandler,
        fetcher: Fetcher,
        get_state: StateGetter,
        update_state: StateUpdater,
        *,
        session: FlowSession | None = None,
        auto_continue: bool = False,
    ):
        """Initialize the state machine.

        Args:
            config: Flow parameters
            profile: Protocol version behaviour
            registration: Client registration strategy
            fetcher: Performs HTTP calls (relay or direct)
            get_state: Returns the current flow state; called on every step
            update_state: Applies a partial state update synchronously
            session: Flow bookkeeping (a new one is created when omitted)
            auto_continue: Honor continuation requests by scheduling the next step
        """
        self.config = config
        self.profile = profile
        self.registration = registration
        self.fetcher = fetcher
        self.get_state = get_state
        self.update_state = update_state
        self.session = session or FlowSession()
        self.auto_continue = auto_continue

        self._handlers: dict[FlowStep, StepHandler] = {
            FlowStep.IDLE: self._prepare_initial_request,
            FlowStep.REQUEST_WITHOUT_TOKEN: self._request_without_token,
            FlowStep.RECEIVED_401_UNAUTHORIZED: self._prepare_resource_metadata_request,
            FlowStep.REQUEST_RESOURCE_METADATA: self._fetch_resource_metadata,
            FlowStep.RECEIVED_RESOURCE_METADATA: self._prepare_auth_server_metadata_request,
            FlowStep.REQUEST_AUTHORIZATION_SERVER_METADATA: self._discover_auth_server_metadata,
            FlowStep.RECEIVED_AUTHORIZATION_SERVER_METADATA: self.registration.begin,
            FlowStep.RECEIVED_CLIENT_CREDENTIALS: self._generate_pkce,
            FlowStep.CIMD_METADATA_RESPONSE: self._generate_pkce,
            FlowStep.GENERATE_PKCE_PARAMETERS: self._build_authorization_url,
            FlowStep.AUTHORIZATION_REQUEST: self._await_authorization_code,
            FlowStep.RECEIVED_AUTHORIZATION_CODE: self._prepare_token_request,
            FlowStep.TOKEN_REQUEST: self._exchange_code,
            FlowStep.RECEIVED_ACCESS_TOKEN: self._prepare_authenticated_request,
            FlowStep.AUTHENTICATED_MCP_REQUEST: self._authenticated_request,
        }
        self._handlers.update(self.registration.step_handlers())

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def proceed_to_next_step(self) -> StepResult | None:
        """Run the handler of the current step and write its result.

        Returns:
            The step result, or None if nothing was written (step failed,
            another step is in flight, the flow is complete, or the flow was
            reset while the step ran)
        """
        session = self.session
        if session.lock.locked():
            logger.warning("A step is already in progress; ignoring request to proceed")
            return None

        async with session.lock:
            generation = session.generation
            step = self.get_state().current_step
            handler = self._handlers.get(step)
            if handler is None:
                logger.info(f"Nothing to do at step '{step.value}'")
                return None

            self.update_state({"is_initiating_auth": True})
            logger.debug(f"Running step '{step.value}'")

            try:
                result = await handler(self.get_state())
                next_step = result.next_step
                if next_step is not None and get_step_index(next_step) < get_step_index(step):
                    raise FlowStepError(
                        f"Step '{step.value}' cannot move back to '{FlowStep(next_step).value}'"
                    )
            except FlowStepError as e:
                if generation != session.generation:
                    logger.info(f"Discarding failure of step '{step.value}' after reset")
                    return None
                logger.error(f"Step '{step.value}' failed: {e}")
                if e.hard_stop:
                    session.cancel_pending()
                self.update_state({**e.updates, "error": str(e), "is_initiating_auth": False})
                return None
            except Exception as e:
                if generation != session.generation:
                    logger.info(f"Discarding failure of step '{step.value}' after reset")
                    return None
                logger.exception(f"Unexpected error in step '{step.value}'")
                self.update_state({"error": str(e) or type(e).__name__, "is_initiating_auth": False})
                return None

            if generation != session.generation:
                logger.info(f"Discarding result of step '{step.value}' after reset")
                return None

            self.update_state({"error": None, **result.updates, "is_initiating_auth": False})

        if next_step is not None:
            logger.info(f"Step '{step.value}' -> '{FlowStep(next_step).value}'")
        if result.continue_after is not None and self.auto_continue:
            self._schedule(result.continue_after, self.get_state().current_step)
        return result

    def reset_flow(self) -> None:
        """Discard the whole flow and return to ``idle``.

        Pending continuations are cancelled and any step still in flight will
        discard its result when it completes.
        """
        self.session.reset()
        empty = FlowState()
        self.update_state({f.name: getattr(empty, f.name) for f in fields(FlowState)})
        logger.info("Flow reset")

    def submit_authorization_code(self, code: str, returned_state: str | None) -> bool:
        """Deliver an authorization code from the redirect.

        The same code is accepted only once per flow. The returned ``state``
        must equal the one generated for this flow.

        Returns:
            True if the code was accepted
        """
        code = (code or "").strip()
        if not code:
            self.update_state({"error": MISSING_CODE_MESSAGE})
            return False

        if code in self.session.processed_codes:
            logger.info("Ignoring authorization code that was already processed")
            return False

        state = self.get_state()
        if not state.state:
            logger.warning("Authorization code received but no state is stored")
            self.update_state({"error": FLOW_RESET_MESSAGE})
            return False

        waiting = state.current_step in _CODE_STEPS or (
            state.current_step == FlowStep.TOKEN_REQUEST and not state.authorization_code
        )
        if not waiting:
            logger.warning(
                f"Ignoring authorization code at step '{state.current_step.value}'"
            )
            return False

        if returned_state != state.state:
            error = StateMismatchError(STATE_MISMATCH_MESSAGE)
            logger.error(str(error))
            self.session.cancel_pending()
            self.update_state({"error": str(error)})
            return False

        self.session.processed_codes.add(code)
        updates: dict[str, Any] = {"authorization_code": code, "error": None}
        if state.current_step == FlowStep.AUTHORIZATION_REQUEST:
            updates["current_step"] = FlowStep.RECEIVED_AUTHORIZATION_CODE
        self.update_state(updates)
        logger.info("Authorization code accepted")

        if self.auto_continue:
            self._schedule(self.config.code_exchange_delay, self.get_state().current_step)
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _schedule(self, delay: float, expected_step: FlowStep) -> None:
        async def continue_flow() -> None:
            if self.get_state().current_step != expected_step:
                return
            await self.proceed_to_next_step()

        self.session.schedule(delay, continue_flow)

    def _continue(self, updates: dict[str, Any]) -> StepResult:
        return StepResult(updates, continue_after=self.config.continuation_delay)

    def _server_url(self, state: FlowState) -> str:
        server_url = state.server_url or self.config.server_url
        if not server_url:
            raise FlowStepError("No server URL available")
        return server_url

    def _initialize_request(self, server_url: str, access_token: str | None = None) -> HttpRequest:
        headers = {
            "Content-Type": "application/json",
            "Accept": MCP_ACCEPT,
            **self.config.custom_headers,
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        body = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {
                "protocolVersion": self.profile.version.value,
                "capabilities": {},
                "clientInfo": {"name": self.config.client_name, "version": __version__},
            },
        }
        return HttpRequest(method="POST", url=server_url, headers=headers, body=body)

    def _resource(self, state: FlowState) -> str | None:
        if state.resource_metadata and state.resource_metadata.resource:
            return state.resource_metadata.resource
        resource = state.server_url or self.config.server_url
        if not resource and self.profile.resource_required:
            raise MetadataValidationError(
                f"The 'resource' parameter is required by protocol {self.profile.version.value}"
            )
        return resource

    @staticmethod
    def _recorded(
        history: tuple, request: HttpRequest, response: HttpResponse
    ) -> dict[str, Any]:
        return {"http_history": history, "last_request": request, "last_response": response}

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def _prepare_initial_request(self, state: FlowState) -> StepResult:
        server_url = self._server_url(state)
        request = self._initialize_request(server_url)
        return self._continue(
            {
                "current_step": FlowStep.REQUEST_WITHOUT_TOKEN,
                "server_url": server_url,
                "last_request": request,
                "last_response": None,
                "http_history": push_request(
                    state.http_history, FlowStep.REQUEST_WITHOUT_TOKEN, request
                ),
            }
        )

    async def _request_without_token(self, state: FlowState) -> StepResult:
        request = self._initialize_request(self._server_url(state))
        response, history, transport_error = await execute_recorded(
            self.fetcher, state.http_history, FlowStep.REQUEST_WITHOUT_TOKEN, request
        )
        recorded = self._recorded(history, request, response)

        if transport_error is not None:
            raise FlowStepError(f"Failed to request MCP server: {transport_error}", recorded)
        if response.status != 401:
            raise FlowStepError(f"Expected 401 Unauthorized but got HTTP {response.status}", recorded)

        header = response.headers.get("www-authenticate")
        info_logs = state.info_logs
        if header:
            scheme, params = parse_www_authenticate(header)
            info_logs = add_info_log(
                info_logs,
                "www-authenticate",
                "WWW-Authenticate Header",
                {"header": header, "scheme": scheme, "params": params},
            )
        else:
            logger.warning("401 response carries no WWW-Authenticate header")

        return StepResult(
            {
                **recorded,
                "current_step": FlowStep.RECEIVED_401_UNAUTHORIZED,
                "www_authenticate_header": header,
                "info_logs": info_logs,
            }
        )

    async def _prepare_resource_metadata_request(self, state: FlowState) -> StepResult:
        resource_metadata_url = extract_resource_metadata_url(state.www_authenticate_header)
        if resource_metadata_url:
            logger.info(f"Using resource metadata URL from WWW-Authenticate: {resource_metadata_url}")
        else:
            resource_metadata_url = build_resource_metadata_url(self._server_url(state))

        request = HttpRequest("GET", resource_metadata_url, {"Accept": "application/json"})
        return self._continue(
            {
                "current_step": FlowStep.REQUEST_RESOURCE_METADATA,
                "resource_metadata_url": resource_metadata_url,
                "last_request": request,
                "last_response": None,
                "http_history": push_request(
                    state.http_history, FlowStep.REQUEST_RESOURCE_METADATA, request
                ),
            }
        )

    async def _fetch_resource_metadata(self, state: FlowState) -> StepResult:
        if not state.resource_metadata_url:
            raise FlowStepError("No resource metadata URL available")

        request = HttpRequest("GET", state.resource_metadata_url, {"Accept": "application/json"})
        response, history, transport_error = await execute_recorded(
            self.fetcher, state.http_history, FlowStep.REQUEST_RESOURCE_METADATA, request
        )
        recorded = self._recorded(history, request, response)

        if transport_error is not None:
            raise FlowStepError(f"Failed to request resource metadata: {transport_error}", recorded)
        if response.status == 404:
            raise FlowStepError(
                "Server does not implement OAuth 2.0 Protected Resource Metadata (404)", recorded
            )
        if not response.ok:
            raise FlowStepError(f"Failed to fetch resource metadata: HTTP {response.status}", recorded)

        try:
            metadata = ResourceMetadata.from_dict(response.body)
        except FlowStepError as e:
            e.updates = {**recorded, **e.updates}
            raise

        info_logs = add_info_log(
            state.info_logs,
            "authorization-servers",
            "Authorization Servers",
            {
                "resource": metadata.resource,
                "authorization_servers": metadata.authorization_servers,
                "scopes_supported": metadata.scopes_supported,
            },
        )
        return StepResult(
            {
                **recorded,
                "current_step": FlowStep.RECEIVED_RESOURCE_METADATA,
                "resource_metadata": metadata,
                "authorization_server_url": metadata.authorization_servers[0],
                "info_logs": info_logs,
            }
        )

    async def _prepare_auth_server_metadata_request(self, state: FlowState) -> StepResult:
        if not state.authorization_server_url:
            raise FlowStepError("No authorization server URL available")

        candidates = build_auth_server_metadata_urls(state.authorization_server_url, self.profile)
        request = HttpRequest("GET", candidates[0], {"Accept": "application/json"})
        return self._continue(
            {
                "current_step": FlowStep.REQUEST_AUTHORIZATION_SERVER_METADATA,
                "last_request": request,
                "last_response": None,
                "http_history": push_request(
                    state.http_history, FlowStep.REQUEST_AUTHORIZATION_SERVER_METADATA, request
                ),
            }
        )

    async def _discover_auth_server_metadata(self, state: FlowState) -> StepResult:
        """Try each candidate URL in order until one answers with 2xx.

        Every attempt gets its own history entry. 4xx moves on to the next
        candidate; 5xx and transport failures become the error of record.
        """
        if not state.authorization_server_url:
            raise FlowStepError("No authorization server URL available")

        step = FlowStep.REQUEST_AUTHORIZATION_SERVER_METADATA
        candidates = build_auth_server_metadata_urls(state.authorization_server_url, self.profile)
        history = state.http_history
        error_of_record: str | None = None
        last_error: str | None = None
        found: tuple[HttpRequest, HttpResponse] | None = None

        for url in candidates:
            request = HttpRequest("GET", url, {"Accept": "application/json"})
            response, history, transport_error = await execute_recorded(
                self.fetcher, history, step, request
            )
            if transport_error is not None:
                error_of_record = f"{url}: {transport_error}"
                continue
            if response.ok:
                found = (request, response)
                break
            if response.status >= 500:
                error_of_record = f"HTTP {response.status} from {url}"
            else:
                last_error = f"HTTP {response.status} from {url}"
            logger.debug(f"Authorization server metadata not at {url} ({response.status})")

        if found is None:
            raise MetadataValidationError(
                "Could not discover authorization server metadata. "
                f"Last error: {error_of_record or last_error}",
                self._recorded(history, request, response),
            )

        request, response = found
        recorded = self._recorded(history, request, response)
        try:
            metadata = AuthorizationServerMetadata.from_dict(response.body)
        except FlowStepError as e:
            e.updates = {**recorded, **e.updates}
            raise

        updates: dict[str, Any] = {}
        level = "info"
        if not metadata.supports_pkce():
            if self.profile.pkce_required:
                raise PKCECapabilityError(
                    "Authorization server does not advertise S256 PKCE support, "
                    f"which protocol {self.profile.version.value} requires",
                    recorded,
                )
            logger.warning("Authorization server may not support S256 PKCE method")
            updates["error"] = "Warning: Authorization server may not support S256 PKCE method"
            level = "warning"

        info_logs = add_info_log(
            state.info_logs,
            "as-metadata",
            "Authorization Server Metadata",
            {
                "discovered_at": request.url,
                "issuer": metadata.issuer,
                "authorization_endpoint": metadata.authorization_endpoint,
                "token_endpoint": metadata.token_endpoint,
                "registration_endpoint": metadata.registration_endpoint,
                "code_challenge_methods_supported": metadata.code_challenge_methods_supported,
                "client_id_metadata_document_supported": (
                    metadata.client_id_metadata_document_supported
                ),
            },
            level,
        )
        return StepResult(
            {
                **recorded,
                **updates,
                "current_step": FlowStep.RECEIVED_AUTHORIZATION_SERVER_METADATA,
                "authorization_server_metadata": metadata,
                "info_logs": info_logs,
            }
        )

    # ------------------------------------------------------------------
    # PKCE and authorization
    # ------------------------------------------------------------------

    async def _generate_pkce(self, state: FlowState) -> StepResult:
        code_verifier, code_challenge = generate_pkce_pair()
        info_logs = add_info_log(
            state.info_logs,
            "pkce-generation",
            "Generate PKCE Parameters",
            {
                "code_challenge": code_challenge,
                "method": "S256",
                "resource": self._resource(state) or "Unknown",
            },
        )
        return self._continue(
            {
                "current_step": FlowStep.GENERATE_PKCE_PARAMETERS,
                "code_verifier": code_verifier,
                "code_challenge": code_challenge,
                "code_challenge_method": "S256",
                "state": state.state or generate_state(),
                "info_logs": info_logs,
            }
        )

    async def _build_authorization_url(self, state: FlowState) -> StepResult:
        metadata = state.authorization_server_metadata
        if metadata is None or not state.client_id:
            raise FlowStepError("Missing authorization endpoint or client ID")
        if not state.code_challenge or not state.state:
            raise FlowStepError("PKCE parameters have not been generated")

        params = {
            "response_type": "code",
            "client_id": state.client_id,
            "redirect_uri": self.config.redirect_url,
            "code_challenge": state.code_challenge,
            "code_challenge_method": "S256",
            "state": state.state,
        }
        resource = self._resource(state)
        if resource:
            params["resource"] = resource
        scope = select_scopes(state, self.config.custom_scopes)
        if scope:
            params["scope"] = scope

        separator = "&" if "?" in metadata.authorization_endpoint else "?"
        authorization_url = f"{metadata.authorization_endpoint}{separator}{urlencode(params)}"

        info_logs = add_info_log(
            state.info_logs, "auth-url", "Authorization URL", {"url": authorization_url, **params}
        )
        return StepResult(
            {
                "current_step": FlowStep.AUTHORIZATION_REQUEST,
                "authorization_url": authorization_url,
                "authorization_code": None,
                "access_token": None,
                "refresh_token": None,
                "token_type": None,
                "expires_in": None,
                "info_logs": info_logs,
            }
        )

    async def _await_authorization_code(self, state: FlowState) -> StepResult:
        updates: dict[str, Any] = {"current_step": FlowStep.RECEIVED_AUTHORIZATION_CODE}
        if state.authorization_code:
            return self._continue(updates)
        return StepResult(updates)

    # ------------------------------------------------------------------
    # Token exchange
    # ------------------------------------------------------------------

    def _token_request(self, state: FlowState) -> HttpRequest:
        metadata = state.authorization_server_metadata
        if metadata is None or not metadata.token_endpoint:
            raise FlowStepError("Missing token endpoint")
        if not state.authorization_code:
            raise FlowStepError("Missing authorization code")
        if not state.code_verifier:
            raise FlowStepError("PKCE code_verifier is missing - cannot exchange token")

        body = {
            "grant_type": "authorization_code",
            "code": state.authorization_code,
            "redirect_uri": self.config.redirect_url,
        }
        if state.client_id:
            body["client_id"] = state.client_id
        body["code_verifier"] = state.code_verifier
        if state.client_secret:
            body["client_secret"] = state.client_secret
        resource = self._resource(state)
        if resource:
            body["resource"] = resource

        return HttpRequest("POST", metadata.token_endpoint, dict(FORM_HEADERS), body)

    async def _prepare_token_request(self, state: FlowState) -> StepResult:
        if not state.authorization_code or not state.authorization_code.strip():
            raise FlowStepError(MISSING_CODE_MESSAGE)

        request = self._token_request(state)
        info_logs = add_info_log(
            state.info_logs,
            "auth-code",
            "Authorization Code",
            {"code": truncate_secret(state.authorization_code)},
        )
        return self._continue(
            {
                "current_step": FlowStep.TOKEN_REQUEST,
                "last_request": request,
                "last_response": None,
                "access_token": None,
                "refresh_token": None,
                "http_history": push_request(state.http_history, FlowStep.TOKEN_REQUEST, request),
                "info_logs": info_logs,
            }
        )

    async def _exchange_code(self, state: FlowState) -> StepResult:
        request = self._token_request(state)
        response, history, transport_error = await execute_recorded(
            self.fetcher, state.http_history, FlowStep.TOKEN_REQUEST, request
        )
        recorded = self._recorded(history, request, response)

        if transport_error is not None:
            raise FlowStepError(f"Token exchange failed: {transport_error}", recorded)

        body = response.body if isinstance(response.body, dict) else {}
        if not response.ok:
            # The code may already be consumed; never send it twice
            raise TokenExchangeError(
                body.get("error") or response.status_text or f"HTTP {response.status}",
                body.get("error_description"),
                {**recorded, "authorization_code": None},
            )
        if not body.get("access_token"):
            raise TokenExchangeError(
                "invalid_response",
                "Token response missing 'access_token'",
                {**recorded, "authorization_code": None},
            )

        access_token = body["access_token"]
        refresh_token = body.get("refresh_token")
        info_logs = state.info_logs
        decoded = describe_jwt(access_token)
        if decoded is not None:
            info_logs = add_info_log(info_logs, "token", "Access Token (Decoded JWT)", decoded)
        else:
            logger.debug("Access token is not a JWT")
        if refresh_token:
            info_logs = add_info_log(
                info_logs,
                "refresh-token",
                "Refresh Token",
                {"refresh_token": truncate_secret(refresh_token)},
            )

        logger.info("Obtained access token")
        return StepResult(
            {
                **recorded,
                "current_step": FlowStep.RECEIVED_ACCESS_TOKEN,
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_type": body.get("token_type") or "Bearer",
                "expires_in": body.get("expires_in"),
                "scope": body.get("scope"),
                "info_logs": info_logs,
            }
        )

    # ------------------------------------------------------------------
    # Authenticated replay
    # ------------------------------------------------------------------

    async def _prepare_authenticated_request(self, state: FlowState) -> StepResult:
        if not state.access_token:
            raise FlowStepError("Missing server URL or access token")
        request = self._initialize_request(self._server_url(state), state.access_token)
        return self._continue(
            {
                "current_step": FlowStep.AUTHENTICATED_MCP_REQUEST,
                "last_request": request,
                "last_response": None,
                "http_history": push_request(
                    state.http_history, FlowStep.AUTHENTICATED_MCP_REQUEST, request
                ),
            }
        )

    async def _authenticated_request(self, state: FlowState) -> StepResult:
        if not state.access_token:
            raise FlowStepError("Missing server URL or access token")
        request = self._initialize_request(self._server_url(state), state.access_token)
        response, history, transport_error = await execute_recorded(
            self.fetcher, state.http_history, FlowStep.AUTHENTICATED_MCP_REQUEST, request
        )
        recorded = self._recorded(history, request, response)

        if transport_error is not None:
            raise AuthenticatedRequestError(
                f"Authenticated MCP request failed: {transport_error}", recorded
            )
        if not response.ok:
            raise AuthenticatedRequestError(
                f"Authenticated request failed: {response.status} {response.status_text}",
                recorded,
            )

        logger.info("MCP server accepted the access token")
        return StepResult({**recorded, "current_step": FlowStep.COMPLETE})
