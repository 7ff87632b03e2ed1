"""Diagnostic-only decoding of JWT access tokens.

Signatures are never verified; the decoded claims are only shown to the
operator.
"""

import logging
from datetime import UTC, datetime
from typing import Any

import jwt

logger = logging.getLogger(__name__)

TIMESTAMP_CLAIMS = ("exp", "iat", "nbf")


def decode_jwt(token: str) -> dict[str, Any] | None:
    """Decode the claims of a JWT without verifying it.

    Returns:
        The claims dictionary, or None if the token is not a JWT
    """
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        logger.debug(f"Token is not a decodable JWT: {e}")
        return None


def format_jwt_timestamp(value: int | float) -> str:
    """Render a NumericDate claim as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(value, tz=UTC).isoformat()


def describe_jwt(token: str) -> dict[str, Any] | None:
    """Decode a JWT and annotate its timestamp claims for display."""
    claims = decode_jwt(token)
    if claims is None:
        return None

    formatted = dict(claims)
    for claim in TIMESTAMP_CLAIMS:
        value = formatted.get(claim)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                formatted[claim] = f"{value} ({format_jwt_timestamp(value)})"
            except (OverflowError, OSError, ValueError):
                logger.debug(f"Claim {claim} is out of range: {value}")
    return formatted
