"""MCP authorization protocol versions and their behavioural differences.

A single state machine drives every version; everything that differs between
versions lives in a :class:`ProtocolProfile`.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..utils.errors import UnsupportedProtocolVersionError


class ProtocolVersion(str, Enum):
    """Supported MCP authorization protocol revisions."""

    V2025_03_26 = "2025-03-26"
    V2025_06_18 = "2025-06-18"
    V2025_11_25 = "2025-11-25"


class RegistrationStrategy(str, Enum):
    """How the client obtains its ``client_id``."""

    CIMD = "cimd"
    DCR = "dcr"
    PREREGISTERED = "preregistered"


@dataclass(frozen=True)
class ProtocolProfile:
    """Behaviour of one protocol version.

    Attributes:
        version: Protocol version this profile describes
        label: Short display label
        description: One-line description of the revision
        features: Human-readable list of notable behaviours
        registration_strategies: Strategies legal under this version, in priority order
        default_strategy: Strategy used when the caller does not choose one
        pkce_required: Missing S256 support is fatal instead of a warning
        resource_required: The RFC 8707 ``resource`` parameter must be sent
        root_fallback: Authorization server discovery falls back to the origin
    """

    version: ProtocolVersion
    label: str
    description: str
    registration_strategies: tuple[RegistrationStrategy, ...]
    default_strategy: RegistrationStrategy
    pkce_required: bool
    resource_required: bool
    root_fallback: bool
    features: tuple[str, ...] = field(default_factory=tuple)

    def supports(self, strategy: RegistrationStrategy | str) -> bool:
        """Check if a registration strategy is legal for this version."""
        return RegistrationStrategy(strategy) in self.registration_strategies


_LEGACY_STRATEGIES = (RegistrationStrategy.DCR, RegistrationStrategy.PREREGISTERED)

PROFILES: dict[ProtocolVersion, ProtocolProfile] = {
    ProtocolVersion.V2025_03_26: ProtocolProfile(
        version=ProtocolVersion.V2025_03_26,
        label="2025-03-26",
        description="First MCP authorization revision with DCR support",
        registration_strategies=_LEGACY_STRATEGIES,
        default_strategy=RegistrationStrategy.DCR,
        pkce_required=False,
        resource_required=False,
        root_fallback=True,
        features=(
            "Dynamic Client Registration (DCR) priority",
            "RFC 8414 discovery with root fallback",
            "PKCE recommended but not enforced",
        ),
    ),
    ProtocolVersion.V2025_06_18: ProtocolProfile(
        version=ProtocolVersion.V2025_06_18,
        label="2025-06-18 (Stable)",
        description="Stable MCP OAuth revision with DCR support",
        registration_strategies=_LEGACY_STRATEGIES,
        default_strategy=RegistrationStrategy.DCR,
        pkce_required=False,
        resource_required=False,
        root_fallback=True,
        features=(
            "Dynamic Client Registration (DCR) priority",
            "RFC 8414 discovery with root fallback",
            "PKCE recommended but not enforced",
        ),
    ),
    ProtocolVersion.V2025_11_25: ProtocolProfile(
        version=ProtocolVersion.V2025_11_25,
        label="2025-11-25 (Draft)",
        description="Latest MCP OAuth revision with CIMD support",
        registration_strategies=(
            RegistrationStrategy.CIMD,
            RegistrationStrategy.DCR,
            RegistrationStrategy.PREREGISTERED,
        ),
        default_strategy=RegistrationStrategy.CIMD,
        pkce_required=True,
        resource_required=True,
        root_fallback=False,
        features=(
            "Client ID Metadata Documents (CIMD) priority",
            "RFC 8414 OR OIDC discovery without root fallback",
            "PKCE strictly required and enforced",
            "Enhanced security with URL-based client IDs",
        ),
    ),
}

DEFAULT_PROTOCOL_VERSION = ProtocolVersion.V2025_11_25


def get_profile(version: ProtocolVersion | str) -> ProtocolProfile:
    """Look up the profile for a protocol version.

    Raises:
        UnsupportedProtocolVersionError: If the version is unknown
    """
    try:
        return PROFILES[ProtocolVersion(version)]
    except ValueError as e:
        raise UnsupportedProtocolVersionError(str(version)) from e


def get_default_registration_strategy(version: ProtocolVersion | str) -> RegistrationStrategy:
    """Return the registration strategy a version prefers."""
    return get_profile(version).default_strategy


def get_supported_registration_strategies(
    version: ProtocolVersion | str,
) -> list[RegistrationStrategy]:
    """Return the registration strategies legal for a version, in priority order."""
    return list(get_profile(version).registration_strategies)
