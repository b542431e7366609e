"""Event types emitted by the orchestration engine.

Each event corresponds to an engine callback dict, parsed into
a typed dataclass for safe consumption by the server and CLI.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class OrchestratorEvent:
    """Base event from the orchestration engine."""
    event_type: str = ""


@dataclass
class RunStarted(OrchestratorEvent):
    event_type: str = "start"
    goal: str = ""
    tools: list[str] = field(default_factory=list)
    max_tool_iterations: int = 0


@dataclass
class Reasoning(OrchestratorEvent):
    event_type: str = "reasoning"
    iteration: int = 0
    text: str = ""


@dataclass
class ToolCallStarted(OrchestratorEvent):
    """A tool is about to run.

    ``approval_source`` is "policy" when no approval was needed (yolo mode
    or whitelisted), otherwise "user" or "timer".
    """
    event_type: str = "tool_call"
    tool_call_id: str = ""
    tool_name: str = ""
    server_name: str | None = None
    arguments: dict[str, Any] = field(default_factory=dict)
    approval_source: str | None = None


@dataclass
class ToolCallCompleted(OrchestratorEvent):
    event_type: str = "tool_result"
    tool_call_id: str = ""
    tool_name: str = ""
    output_ref: str | None = None
    result: str = ""
    is_error: bool = False


@dataclass
class ToolApprovalRequired(OrchestratorEvent):
    event_type: str = "tool_approval_required"
    request_id: str = ""
    tool_call_id: str = ""
    tool_name: str = ""
    server_name: str | None = None
    arguments: dict[str, Any] = field(default_factory=dict)
    mode: str = ""
    auto_approve_at: float | None = None


@dataclass
class ToolApprovalResolved(OrchestratorEvent):
    """Auxiliary notice that a pending request was settled.

    Not part of the per-step stream: it sits between
    ``tool_approval_required`` and the step that follows (``tool_call`` or
    ``tool_denied``), and consumers that only follow steps can skip it.
    The same source is carried on ``tool_call`` as ``approval_source``.
    """
    event_type: str = "tool_approval_resolved"
    request_id: str = ""
    tool_name: str = ""
    decision: str = ""
    source: str = ""


@dataclass
class ToolDenied(OrchestratorEvent):
    event_type: str = "tool_denied"
    request_id: str = ""
    tool_call_id: str = ""
    tool_name: str = ""
    reason: str = ""


@dataclass
class FinalResult(OrchestratorEvent):
    event_type: str = "final_result"
    text: str | None = None
    iterations: int = 0


@dataclass
class RunFinished(OrchestratorEvent):
    """Emitted by the bridge once run() returns or raises."""
    event_type: str = "run_finished"
    success: bool = True
    result: str | None = None
    error: str | None = None
    duration_seconds: float = 0.0


# Map of event type strings to dataclass constructors
_EVENT_MAP: dict[str, type[OrchestratorEvent]] = {
    "start": RunStarted,
    "reasoning": Reasoning,
    "tool_call": ToolCallStarted,
    "tool_result": ToolCallCompleted,
    "tool_approval_required": ToolApprovalRequired,
    "tool_approval_resolved": ToolApprovalResolved,
    "tool_denied": ToolDenied,
    "final_result": FinalResult,
    "run_finished": RunFinished,
}


def event_to_dict(event: OrchestratorEvent) -> dict[str, Any]:
    """Convert a typed event dataclass to a plain dict for JSON serialization."""
    d: dict[str, Any] = {}
    for f in event.__dataclass_fields__:
        val = getattr(event, f)
        if val is not None:
            d[f] = val
    # Use "event" key instead of "event_type" for consistency with engine callbacks
    if "event_type" in d:
        d["event"] = d.pop("event_type")
    return d


def dict_to_event(data: dict[str, Any]) -> OrchestratorEvent:
    """Convert an engine callback dict to a typed event dataclass."""
    event_type = data.get("event", "")
    cls = _EVENT_MAP.get(event_type, OrchestratorEvent)
    # Filter dict keys to only those the dataclass accepts
    valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    if "event" in data and "event_type" not in filtered:
        filtered["event_type"] = data["event"]
    return cls(**filtered)
