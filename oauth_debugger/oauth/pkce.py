"""PKCE and random-value helpers (RFC 7636).

All randomness comes from ``secrets`` and is drawn from the unreserved
character set, so the values are safe to place in URLs unescaped.
"""

import hashlib
import secrets
import string
from base64 import urlsafe_b64encode

UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"

MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


def generate_random_string(length: int) -> str:
    """Generate a random string over the unreserved alphabet.

    Args:
        length: Number of characters to generate

    Returns:
        Random string of exactly ``length`` characters
    """
    if length < 1:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(UNRESERVED_CHARACTERS) for _ in range(length))


def generate_code_verifier(length: int = 64) -> str:
    """Generate a PKCE code verifier between 43 and 128 characters."""
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"Code verifier length must be between {MIN_VERIFIER_LENGTH} "
            f"and {MAX_VERIFIER_LENGTH}, got {length}"
        )
    return generate_random_string(length)


def generate_code_challenge(code_verifier: str, *, strict: bool = False) -> str:
    """Compute the S256 code challenge for a verifier.

    Args:
        code_verifier: PKCE code verifier
        strict: Reject verifiers outside the RFC 7636 length range

    Returns:
        Base64url-encoded SHA-256 digest without padding

    Raises:
        ValueError: If strict is set and the verifier length is invalid
    """
    if strict and not MIN_VERIFIER_LENGTH <= len(code_verifier) <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"Code verifier must be {MIN_VERIFIER_LENGTH}-{MAX_VERIFIER_LENGTH} "
            f"characters, got {len(code_verifier)}"
        )

    return (
        urlsafe_b64encode(hashlib.sha256(code_verifier.encode("utf-8")).digest())
        .decode("utf-8")
        .rstrip("=")
    )


def generate_pkce_pair() -> tuple[str, str]:
    """Generate PKCE code verifier and challenge.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    code_verifier = generate_code_verifier()
    return code_verifier, generate_code_challenge(code_verifier, strict=True)


def generate_state() -> str:
    """Generate an anti-CSRF ``state`` value."""
    return generate_random_string(32)
