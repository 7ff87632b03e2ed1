"""Typed protected-resource and authorization-server metadata documents."""

from dataclasses import dataclass, field
from typing import Any

from ..utils.errors import MetadataValidationError, MissingMetadataFieldError


@dataclass
class ResourceMetadata:
    """OAuth Protected Resource Metadata (RFC 9728) published by an MCP server."""

    resource: str
    authorization_servers: list[str]
    scopes_supported: list[str] | None = None
    bearer_methods_supported: list[str] | None = None
    resource_name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> "ResourceMetadata":
        """Validate and build resource metadata from a JSON document.

        Raises:
            MetadataValidationError: If the document is not a JSON object
            MissingMetadataFieldError: If ``resource`` or ``authorization_servers`` is absent
        """
        if not isinstance(data, dict):
            raise MetadataValidationError("Resource metadata is not a JSON object")
        if not data.get("resource"):
            raise MissingMetadataFieldError("resource", "Resource metadata")
        if not data.get("authorization_servers"):
            raise MissingMetadataFieldError("authorization_servers", "Resource metadata")

        return cls(
            resource=data["resource"],
            authorization_servers=list(data["authorization_servers"]),
            scopes_supported=data.get("scopes_supported"),
            bearer_methods_supported=data.get("bearer_methods_supported"),
            resource_name=data.get("resource_name"),
            raw=dict(data),
        )


@dataclass
class AuthorizationServerMetadata:
    """OAuth Authorization Server Metadata (RFC 8414 / OIDC Discovery)."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str | None = None
    scopes_supported: list[str] | None = None
    response_types_supported: list[str] | None = None
    grant_types_supported: list[str] | None = None
    code_challenge_methods_supported: list[str] | None = None
    token_endpoint_auth_methods_supported: list[str] | None = None
    client_id_metadata_document_supported: bool = False
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> "AuthorizationServerMetadata":
        """Validate and build authorization server metadata from a JSON document.

        Raises:
            MetadataValidationError: If the document is malformed or lacks ``code`` support
            MissingMetadataFieldError: If a required endpoint or the issuer is absent
        """
        if not isinstance(data, dict):
            raise MetadataValidationError("Authorization server metadata is not a JSON object")
        for required in ("issuer", "authorization_endpoint", "token_endpoint"):
            if not data.get(required):
                raise MissingMetadataFieldError(required, "Authorization server metadata")
        if "code" not in (data.get("response_types_supported") or []):
            raise MetadataValidationError(
                "Authorization server does not support 'code' response type"
            )

        return cls(
            issuer=data["issuer"],
            authorization_endpoint=data["authorization_endpoint"],
            token_endpoint=data["token_endpoint"],
            registration_endpoint=data.get("registration_endpoint"),
            scopes_supported=data.get("scopes_supported"),
            response_types_supported=data.get("response_types_supported"),
            grant_types_supported=data.get("grant_types_supported"),
            code_challenge_methods_supported=data.get("code_challenge_methods_supported"),
            token_endpoint_auth_methods_supported=data.get(
                "token_endpoint_auth_methods_supported"
            ),
            client_id_metadata_document_supported=bool(
                data.get("client_id_metadata_document_supported", False)
            ),
            raw=dict(data),
        )

    def supports_pkce(self) -> bool:
        """Check if PKCE is supported."""
        return (
            self.code_challenge_methods_supported is not None
            and "S256" in self.code_challenge_methods_supported
        )

    def supports_public_clients(self) -> bool:
        """Check if public clients (no client secret) are supported."""
        return (
            self.token_endpoint_auth_methods_supported is not None
            and "none" in self.token_endpoint_auth_methods_supported
        )
