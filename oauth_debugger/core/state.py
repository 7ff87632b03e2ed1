"""Flow state and its reference owner.

``FlowState`` is an immutable value. Every mutation produces a new instance
through :meth:`FlowState.apply`, which lets observers compare snapshots and
lets a reset replace the whole value at once.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from typing import Any

from ..oauth.metadata import AuthorizationServerMetadata, ResourceMetadata
from .steps import FlowStep

logger = logging.getLogger(__name__)

StateListener = Callable[["FlowState"], None]


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class HttpRequest:
    """Description of an outbound HTTP request."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class HttpResponse:
    """Normalized HTTP response as recorded in the history."""

    status: int
    status_text: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class HttpHistoryEntry:
    """One request of the flow and, once received, its response."""

    step: FlowStep
    request: HttpRequest
    response: HttpResponse | None = None
    timestamp: datetime = field(default_factory=_now)

    @property
    def pending(self) -> bool:
        return self.response is None


@dataclass(frozen=True)
class InfoLogEntry:
    """Labeled diagnostic entry shown next to the flow."""

    id: str
    label: str
    data: Any
    level: str = "info"
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class FlowState:
    """Everything collected while walking the authorization flow."""

    current_step: FlowStep = FlowStep.IDLE
    is_initiating_auth: bool = False

    # Discovery
    server_url: str | None = None
    www_authenticate_header: str | None = None
    resource_metadata_url: str | None = None
    resource_metadata: ResourceMetadata | None = None
    authorization_server_url: str | None = None
    authorization_server_metadata: AuthorizationServerMetadata | None = None

    # Client identity
    client_id: str | None = None
    client_secret: str | None = None
    registration_method: str | None = None

    # PKCE
    code_verifier: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    state: str | None = None

    # Authorization
    authorization_url: str | None = None
    authorization_code: str | None = None

    # Tokens
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    scope: str | None = None

    # Diagnostics
    http_history: tuple[HttpHistoryEntry, ...] = ()
    info_logs: tuple[InfoLogEntry, ...] = ()
    error: str | None = None
    last_request: HttpRequest | None = None
    last_response: HttpResponse | None = None

    def apply(self, updates: dict[str, Any]) -> "FlowState":
        """Return a copy of the state with ``updates`` applied.

        Raises:
            ValueError: If an update names an unknown field
        """
        unknown = set(updates) - _FIELD_NAMES
        if unknown:
            raise ValueError(f"Unknown flow state fields: {', '.join(sorted(unknown))}")
        return replace(self, **updates)

    def info_log(self, log_id: str) -> InfoLogEntry | None:
        """Find an info log entry by id."""
        return next((entry for entry in self.info_logs if entry.id == log_id), None)


_FIELD_NAMES = {f.name for f in fields(FlowState)}


class FlowStateStore:
    """Reference owner of a :class:`FlowState`.

    Provides the ``get_state`` / ``update_state`` pair the state machine needs
    and notifies listeners synchronously after every change.
    """

    def __init__(self, initial: FlowState | None = None):
        self._state = initial or FlowState()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> FlowState:
        return self._state

    def get_state(self) -> FlowState:
        return self._state

    def update_state(self, updates: dict[str, Any]) -> None:
        """Apply a partial update and notify listeners."""
        self._state = self._state.apply(updates)
        self._notify()

    def replace(self, state: FlowState) -> None:
        """Replace the whole state, e.g. on reset or when the target server changes."""
        self._state = state
        self._notify()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.warning(f"State listener failed: {e}")
