"""Error types for the OAuth debugger."""

from typing import Any


class OAuthDebuggerError(Exception):
    """Base exception for OAuth debugger errors."""

    pass


# Configuration errors
class ConfigurationError(OAuthDebuggerError):
    """Raised when configuration is missing or invalid."""

    pass


class UnsupportedProtocolVersionError(ConfigurationError):
    """Raised when an unknown MCP protocol version is requested."""

    def __init__(self, version: str):
        super().__init__(f"Unsupported protocol version: {version}")
        self.version = version


class UnsupportedRegistrationStrategyError(ConfigurationError):
    """Raised when a registration strategy is not legal for a protocol version."""

    def __init__(self, strategy: str, version: str, supported: list[str]):
        alternatives = " or ".join(f"'{s}'" for s in supported)
        super().__init__(
            f"{strategy.upper()} registration is not supported in {version} protocol. "
            f"Use {alternatives} instead."
        )
        self.strategy = strategy
        self.version = version
        self.supported = supported


class InvalidClientMetadataUrlError(ConfigurationError):
    """Raised when a CIMD client_id is not an HTTPS URL."""

    def __init__(self, url: str | None):
        super().__init__(
            f"CIMD client_id must be an HTTPS URL with a path, got: {url!r}"
        )
        self.url = url


# Transport errors
class ProxyTransportError(OAuthDebuggerError):
    """Raised when the relay itself is unreachable or fails.

    This is distinct from a non-2xx response of the target server, which is
    returned to the caller as a normal response.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


# Flow step errors
class FlowStepError(OAuthDebuggerError):
    """Raised by a step handler when the current step cannot complete.

    ``updates`` holds state changes that must be applied together with the
    error (for example the failed response recorded in the history).
    Hard stops block further automatic progression.
    """

    hard_stop = False

    def __init__(self, message: str, updates: dict[str, Any] | None = None):
        super().__init__(message)
        self.updates = updates or {}


class MetadataValidationError(FlowStepError):
    """Raised when discovered metadata violates protocol requirements."""

    pass


class MissingMetadataFieldError(MetadataValidationError):
    """Raised when required metadata field is missing."""

    def __init__(
        self,
        field: str,
        metadata_type: str = "metadata",
        updates: dict[str, Any] | None = None,
    ):
        super().__init__(f"{metadata_type} missing '{field}' field", updates)
        self.field = field
        self.metadata_type = metadata_type


class RegistrationError(FlowStepError):
    """Raised when client registration fails and no fallback applies."""

    hard_stop = True


class PKCECapabilityError(FlowStepError):
    """Raised when PKCE S256 is mandatory but not advertised."""

    hard_stop = True


class StateMismatchError(FlowStepError):
    """Raised when an authorization callback fails the anti-CSRF check."""

    hard_stop = True


class TokenExchangeError(FlowStepError):
    """Raised when the token endpoint rejects the authorization code."""

    def __init__(
        self,
        error: str,
        error_description: str | None = None,
        updates: dict[str, Any] | None = None,
    ):
        super().__init__(
            f"Token request failed: {error} - {error_description or 'Unknown error'}",
            updates,
        )
        self.error = error
        self.error_description = error_description


class AuthenticatedRequestError(FlowStepError):
    """Raised when the MCP server rejects the authenticated request."""

    pass
