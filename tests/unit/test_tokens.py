"""Tests for diagnostic access token decoding."""

import pytest

from oauth_debugger.oauth.tokens import decode_jwt, describe_jwt, format_jwt_timestamp
from tests.support import make_jwt


class TestJwtDecoding:
    """Tests for diagnostic JWT decoding."""

    def test_decode_claims(self) -> None:
        """Test that the payload of an unsigned token is returned."""
        token = make_jwt({"sub": "user-1", "scope": "mcp:read"})
        assert decode_jwt(token) == {"sub": "user-1", "scope": "mcp:read"}

    @pytest.mark.parametrize(
        "token", ["opaque-token", "a.b", "a.!!!.c", "a.bnVsbA.c", "eyJhbGciOiJub25lIn0.bnVsbA."]
    )
    def test_non_jwt_tokens(self, token: str) -> None:
        """Test that opaque or malformed tokens decode to None."""
        assert decode_jwt(token) is None

    def test_timestamps_are_annotated(self) -> None:
        """Test that exp, iat and nbf gain a readable UTC date."""
        described = describe_jwt(make_jwt({"exp": 1700000000, "iat": 1699996400, "sub": "x"}))
        assert described["exp"] == "1700000000 (2023-11-14T22:13:20+00:00)"
        assert described["iat"].startswith("1699996400 (2023-11-14T21:13:20")
        assert described["sub"] == "x"

    def test_out_of_range_timestamp_is_left_alone(self) -> None:
        """Test that an absurd timestamp does not break decoding."""
        described = describe_jwt(make_jwt({"exp": 10**20}))
        assert described["exp"] == 10**20

    def test_format_timestamp(self) -> None:
        """Test the ISO-8601 rendering of the epoch."""
        assert format_jwt_timestamp(0) == "1970-01-01T00:00:00+00:00"
