"""Configuration management for the debugger, the relay server and the CLI."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..oauth.protocols import DEFAULT_PROTOCOL_VERSION, ProtocolVersion, RegistrationStrategy


class DcrFailurePolicy(str, Enum):
    """What to do when Dynamic Client Registration fails."""

    # Continue with a synthetic client id and a warning
    FALLBACK = "fallback"
    # Stop the flow with a registration error
    FAIL = "fail"


def validate_https_url(value: str | None) -> str | None:
    """Validate that an optional URL uses HTTPS and has a path."""
    if value is None:
        return value
    parts = urlsplit(value)
    if parts.scheme != "https" or not parts.netloc or parts.path in ("", "/"):
        raise ValueError("Client metadata URL must be an https:// URL with a path")
    return value


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="OAUTH_DEBUGGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Relay server
    relay_host: str = Field(default="localhost", description="Relay server bind host")
    relay_port: int = Field(default=6274, description="Relay server port")
    relay_url: str | None = Field(
        default=None,
        description="Relay that `run` sends requests through. Unset means direct requests.",
    )
    relay_allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:6274", "http://127.0.0.1:6274"],
        description="Browser origins allowed to call the relay (CORS)",
    )

    # OAuth client
    redirect_url: str = Field(
        default="http://localhost:8889/callback",
        description="Redirect URI registered for the authorization code",
    )
    client_name: str = Field(default="MCP OAuth Debugger", description="Client display name")
    client_metadata_url: str | None = Field(
        default=None,
        description="HTTPS URL used as client_id with Client ID Metadata Documents",
    )
    client_id: str | None = Field(default=None, description="Pre-registered client id")
    client_secret: str | None = Field(default=None, description="Pre-registered client secret")

    # Flow behaviour
    protocol_version: ProtocolVersion = Field(
        default=DEFAULT_PROTOCOL_VERSION, description="MCP authorization protocol version"
    )
    registration_strategy: RegistrationStrategy | None = Field(
        default=None,
        description="Client registration strategy. Defaults to the protocol's preferred one.",
    )
    dcr_failure_policy: DcrFailurePolicy = Field(
        default=DcrFailurePolicy.FALLBACK,
        description="Continue with a synthetic client id or stop when DCR fails",
    )
    continuation_delay: float = Field(
        default=0.05,
        ge=0,
        description="Seconds between a request being prepared and sent in auto mode",
    )
    code_exchange_delay: float = Field(
        default=0.5,
        ge=0,
        description="Seconds between receiving an authorization code and exchanging it",
    )
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Path | None = Field(default=None, description="Optional log file")

    @field_validator("client_metadata_url")
    @classmethod
    def validate_client_metadata_url(cls, v: str | None) -> str | None:
        """Validate that the CIMD client id is an HTTPS URL."""
        return validate_https_url(v)


@dataclass
class FlowConfig:
    """Parameters of one authorization flow.

    ``registration_strategy`` left as None means the protocol's default.
    """

    server_url: str
    protocol_version: ProtocolVersion = DEFAULT_PROTOCOL_VERSION
    registration_strategy: RegistrationStrategy | None = None
    server_name: str | None = None
    redirect_url: str = "http://localhost:8889/callback"
    custom_scopes: str | None = None
    custom_headers: dict[str, str] = field(default_factory=dict)
    client_id: str | None = None
    client_secret: str | None = None
    client_metadata_url: str | None = None
    client_name: str = "MCP OAuth Debugger"
    dcr_failure_policy: DcrFailurePolicy = DcrFailurePolicy.FALLBACK
    continuation_delay: float = 0.05
    code_exchange_delay: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings, server_url: str, **overrides) -> "FlowConfig":
        """Build a flow configuration from settings, with per-flow overrides."""
        values = {
            "server_url": server_url,
            "protocol_version": settings.protocol_version,
            "registration_strategy": settings.registration_strategy,
            "redirect_url": settings.redirect_url,
            "client_id": settings.client_id,
            "client_secret": settings.client_secret,
            "client_metadata_url": settings.client_metadata_url,
            "client_name": settings.client_name,
            "dcr_failure_policy": settings.dcr_failure_policy,
            "continuation_delay": settings.continuation_delay,
            "code_exchange_delay": settings.code_exchange_delay,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# Global settings instance
settings = Settings()
