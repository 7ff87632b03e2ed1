"""Shared utilities for the OAuth debugger."""

from .errors import (
    AuthenticatedRequestError,
    ConfigurationError,
    FlowStepError,
    InvalidClientMetadataUrlError,
    MetadataValidationError,
    MissingMetadataFieldError,
    OAuthDebuggerError,
    PKCECapabilityError,
    ProxyTransportError,
    RegistrationError,
    StateMismatchError,
    TokenExchangeError,
    UnsupportedProtocolVersionError,
    UnsupportedRegistrationStrategyError,
)
from .logging_config import redact, setup_logging, truncate_secret

__all__ = [
    "AuthenticatedRequestError",
    "ConfigurationError",
    "FlowStepError",
    "InvalidClientMetadataUrlError",
    "MetadataValidationError",
    "MissingMetadataFieldError",
    "OAuthDebuggerError",
    "PKCECapabilityError",
    "ProxyTransportError",
    "RegistrationError",
    "StateMismatchError",
    "TokenExchangeError",
    "UnsupportedProtocolVersionError",
    "UnsupportedRegistrationStrategyError",
    "redact",
    "setup_logging",
    "truncate_secret",
]
