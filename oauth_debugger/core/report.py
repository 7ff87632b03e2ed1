"""Plain-text guide export of a flow."""

import json
from typing import Any

from .state import FlowState, HttpHistoryEntry, InfoLogEntry
from .steps import FlowStep, get_step_index, get_step_info

RULE = "=" * 60

# Step each diagnostic log belongs to
INFO_LOG_STEPS: dict[str, FlowStep] = {
    "www-authenticate": FlowStep.RECEIVED_401_UNAUTHORIZED,
    "authorization-servers": FlowStep.RECEIVED_RESOURCE_METADATA,
    "as-metadata": FlowStep.RECEIVED_AUTHORIZATION_SERVER_METADATA,
    "cimd": FlowStep.CIMD_PREPARE,
    "cimd-fetch": FlowStep.CIMD_FETCH_REQUEST,
    "cimd-validation": FlowStep.CIMD_METADATA_RESPONSE,
    "dcr": FlowStep.REQUEST_CLIENT_REGISTRATION,
    "preregistered": FlowStep.RECEIVED_CLIENT_CREDENTIALS,
    "pkce-generation": FlowStep.GENERATE_PKCE_PARAMETERS,
    "auth-url": FlowStep.AUTHORIZATION_REQUEST,
    "auth-code": FlowStep.RECEIVED_AUTHORIZATION_CODE,
    "token": FlowStep.RECEIVED_ACCESS_TOKEN,
    "refresh-token": FlowStep.RECEIVED_ACCESS_TOKEN,
}


def _dump(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, default=str)


def step_status(step: FlowStep, state: FlowState) -> str:
    """Label a step relative to the flow's progress."""
    current = get_step_index(state.current_step)
    index = get_step_index(step)
    if index < current or state.current_step == FlowStep.COMPLETE:
        return "complete"
    if index == current:
        return "failed" if state.error else "current"
    return "pending"


def group_entries(state: FlowState) -> list[tuple[FlowStep, list[InfoLogEntry | HttpHistoryEntry]]]:
    """Group history entries and info logs by step, in protocol order."""
    groups: dict[FlowStep, list[InfoLogEntry | HttpHistoryEntry]] = {}
    for entry in state.http_history:
        groups.setdefault(entry.step, []).append(entry)
    for log in state.info_logs:
        step = INFO_LOG_STEPS.get(log.id, state.current_step)
        groups.setdefault(step, []).append(log)

    ordered = sorted(groups.items(), key=lambda item: get_step_index(item[0]))
    return [(step, sorted(entries, key=lambda e: e.timestamp)) for step, entries in ordered]


def _format_http(entry: HttpHistoryEntry) -> str:
    lines = [f"[{entry.timestamp.isoformat()}] {entry.request.method} {entry.request.url}"]
    if entry.request.headers:
        lines += ["", "Request Headers:", _dump(entry.request.headers)]
    if entry.request.body is not None:
        lines += ["", "Request Body:", _dump(entry.request.body)]
    if entry.response is None:
        lines += ["", "(pending)"]
    else:
        lines.append(f"Status: {entry.response.status} {entry.response.status_text}")
        if entry.response.headers:
            lines += ["", "Response Headers:", _dump(entry.response.headers)]
        if entry.response.body is not None:
            lines += ["", "Response Body:", _dump(entry.response.body)]
    return "\n".join(lines) + "\n"


def _format_info(log: InfoLogEntry) -> str:
    text = f"[{log.timestamp.isoformat()}] {log.label}"
    if log.level != "info":
        text += f" ({log.level.upper()})"
    text += "\n"
    if log.data is not None:
        text += _dump(log.data) + "\n"
    return text


def generate_guide_text(state: FlowState) -> str:
    """Render the flow as a step-by-step plain-text guide."""
    text = "=== OAuth Debugger - Guide View ===\n\n"
    if state.error:
        text += f"ERROR: {state.error}\n\n"

    groups = group_entries(state)
    if not groups:
        return text + "No activity yet.\n"

    for number, (step, entries) in enumerate(groups, start=1):
        info = get_step_info(step)
        text += f"\n{RULE}\n{number}. {info.title} [{step_status(step, state)}]\n{RULE}\n"
        text += f"{info.summary}\n\n"
        if info.teachable_moments:
            text += "What to pay attention to:\n"
            text += "".join(f"  - {moment}\n" for moment in info.teachable_moments)
            text += "\n"
        if info.tips:
            text += "Tips:\n" + "".join(f"  - {tip}\n" for tip in info.tips) + "\n"
        for entry in entries:
            if isinstance(entry, HttpHistoryEntry):
                text += _format_http(entry) + "\n"
            else:
                text += _format_info(entry) + "\n"

    return text
