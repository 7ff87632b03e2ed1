"""Append-only request ledger and deduplicated diagnostic logs.

All functions are pure: they take the current tuples from a ``FlowState`` and
return new tuples to be written back through a state update.
"""

from dataclasses import replace
from typing import Any

from .state import HttpHistoryEntry, HttpRequest, HttpResponse, InfoLogEntry
from .steps import FlowStep

History = tuple[HttpHistoryEntry, ...]
InfoLogs = tuple[InfoLogEntry, ...]


def add_info_log(
    info_logs: InfoLogs,
    log_id: str,
    label: str,
    data: Any,
    level: str = "info",
) -> InfoLogs:
    """Append an info log entry unless one with the same id already exists."""
    if any(entry.id == log_id for entry in info_logs):
        return info_logs
    return info_logs + (InfoLogEntry(id=log_id, label=label, data=data, level=level),)


def push_request(history: History, step: FlowStep, request: HttpRequest) -> History:
    """Append a pending entry for a request that is about to be sent."""
    return history + (HttpHistoryEntry(step=step, request=request),)


def pending_entry(history: History) -> HttpHistoryEntry | None:
    """Return the last entry if it is still waiting for its response."""
    if history and history[-1].pending:
        return history[-1]
    return None


def prepare_retry(history: History, step: FlowStep, request: HttpRequest) -> History:
    """Make sure the ledger ends with a pending entry before a request is executed.

    A retried execution step finds the previous attempt already answered; a
    fresh pending copy is appended so that no entry ever receives a second
    response.
    """
    if pending_entry(history) is not None:
        return history
    return push_request(history, step, request)


def fill_response(history: History, response: HttpResponse) -> History:
    """Attach a response to the pending entry.

    Raises:
        ValueError: If the last entry already has a response
    """
    if pending_entry(history) is None:
        raise ValueError("No pending request in history to attach a response to")
    return history[:-1] + (replace(history[-1], response=response),)
