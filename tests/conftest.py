"""Pytest configuration and fixtures for the OAuth debugger tests."""

from typing import Any

import pytest

from oauth_debugger.core.config import FlowConfig
from oauth_debugger.core.factory import create_oauth_state_machine
from oauth_debugger.core.state import FlowStateStore
from oauth_debugger.core.state_machine import OAuthStateMachine
from tests.support import SERVER_URL, FakeFetcher, happy_routes


@pytest.fixture
def fetcher() -> FakeFetcher:
    """Fetcher serving a well-behaved MCP server and authorization server."""
    return FakeFetcher(happy_routes())


@pytest.fixture
def store() -> FlowStateStore:
    """Empty flow state store."""
    return FlowStateStore()


@pytest.fixture
def make_machine(store: FlowStateStore, fetcher: FakeFetcher):
    """Factory building a state machine bound to the store and fetcher fixtures."""

    def _make(
        fetcher_override: FakeFetcher | None = None,
        auto_continue: bool = False,
        **overrides: Any,
    ) -> OAuthStateMachine:
        values: dict[str, Any] = {
            "server_url": SERVER_URL,
            "registration_strategy": "dcr",
            "continuation_delay": 0,
            "code_exchange_delay": 0,
        }
        values.update(overrides)
        return create_oauth_state_machine(
            FlowConfig(**values),
            fetcher_override or fetcher,
            store.get_state,
            store.update_state,
            auto_continue=auto_continue,
        )

    return _make
