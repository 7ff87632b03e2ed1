"""Tests for the flow state value, its store and the request ledger."""

import pytest

from oauth_debugger.core.history import (
    add_info_log,
    fill_response,
    pending_entry,
    prepare_retry,
    push_request,
)
from oauth_debugger.core.state import FlowState, FlowStateStore, HttpRequest, HttpResponse
from oauth_debugger.core.steps import FlowStep

REQUEST = HttpRequest("GET", "https://rs.example/.well-known/oauth-protected-resource")
RESPONSE = HttpResponse(200, "OK", {}, {"resource": "https://rs.example"})


class TestFlowState:
    """Tests for the immutable FlowState."""

    def test_apply_returns_new_instance(self) -> None:
        """Test that updates never mutate the original snapshot."""
        original = FlowState()
        updated = original.apply({"current_step": FlowStep.REQUEST_WITHOUT_TOKEN})
        assert original.current_step == FlowStep.IDLE
        assert updated.current_step == FlowStep.REQUEST_WITHOUT_TOKEN

    def test_apply_rejects_unknown_fields(self) -> None:
        """Test that typos in update keys are caught."""
        with pytest.raises(ValueError, match="acces_token"):
            FlowState().apply({"acces_token": "x"})

    def test_info_log_lookup(self) -> None:
        """Test finding an info log by id."""
        state = FlowState(info_logs=add_info_log((), "token", "Token", {"sub": "a"}))
        assert state.info_log("token").data == {"sub": "a"}
        assert state.info_log("missing") is None


class TestFlowStateStore:
    """Tests for FlowStateStore."""

    def test_update_notifies_listeners(self) -> None:
        """Test that listeners see each new snapshot."""
        store = FlowStateStore()
        seen: list[FlowStep] = []
        unsubscribe = store.subscribe(lambda state: seen.append(state.current_step))

        store.update_state({"current_step": FlowStep.REQUEST_WITHOUT_TOKEN})
        unsubscribe()
        store.update_state({"current_step": FlowStep.RECEIVED_401_UNAUTHORIZED})

        assert seen == [FlowStep.REQUEST_WITHOUT_TOKEN]
        assert store.get_state().current_step == FlowStep.RECEIVED_401_UNAUTHORIZED

    def test_failing_listener_does_not_break_updates(self) -> None:
        """Test that a listener exception is contained."""
        store = FlowStateStore()

        def broken(_state: FlowState) -> None:
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.update_state({"error": "x"})
        assert store.state.error == "x"

    def test_replace(self) -> None:
        """Test replacing the whole state."""
        store = FlowStateStore(FlowState(error="old"))
        store.replace(FlowState())
        assert store.state.error is None


class TestHistory:
    """Tests for the append-only request ledger."""

    def test_push_then_fill(self) -> None:
        """Test that a response completes the pending entry."""
        history = push_request((), FlowStep.REQUEST_RESOURCE_METADATA, REQUEST)
        assert pending_entry(history) is history[0]

        history = fill_response(history, RESPONSE)
        assert len(history) == 1
        assert history[0].response == RESPONSE
        assert pending_entry(history) is None

    def test_fill_without_pending_entry_raises(self) -> None:
        """Test that no entry ever receives a second response."""
        history = fill_response(
            push_request((), FlowStep.REQUEST_RESOURCE_METADATA, REQUEST), RESPONSE
        )
        with pytest.raises(ValueError):
            fill_response(history, RESPONSE)
        with pytest.raises(ValueError):
            fill_response((), RESPONSE)

    def test_prepare_retry_appends_after_completed_entry(self) -> None:
        """Test that a retried step gets a fresh pending entry."""
        answered = fill_response(
            push_request((), FlowStep.REQUEST_RESOURCE_METADATA, REQUEST), RESPONSE
        )
        retried = prepare_retry(answered, FlowStep.REQUEST_RESOURCE_METADATA, REQUEST)
        assert len(retried) == 2
        assert retried[0].response == RESPONSE
        assert retried[1].pending

    def test_prepare_retry_keeps_existing_pending_entry(self) -> None:
        """Test that an already pending entry is reused."""
        pending = push_request((), FlowStep.REQUEST_RESOURCE_METADATA, REQUEST)
        assert prepare_retry(pending, FlowStep.REQUEST_RESOURCE_METADATA, REQUEST) is pending


class TestInfoLogs:
    """Tests for info log de-duplication."""

    def test_duplicate_ids_are_ignored(self) -> None:
        """Test that the first entry for an id wins."""
        logs = add_info_log((), "pkce-generation", "PKCE", {"method": "S256"})
        again = add_info_log(logs, "pkce-generation", "PKCE", {"method": "plain"})
        assert again is logs
        assert len(again) == 1
        assert again[0].data == {"method": "S256"}

    def test_level_is_recorded(self) -> None:
        """Test that the level defaults to info and can be overridden."""
        logs = add_info_log((), "a", "A", None)
        logs = add_info_log(logs, "b", "B", None, level="warning")
        assert [entry.level for entry in logs] == ["info", "warning"]
