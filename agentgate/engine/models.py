"""Core data models for the tool orchestration engine.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def _make_id() -> str:
    return str(uuid.uuid4())


def _now() -> float:
    return time.time()


class MessageRole(str, Enum):
    """Roles of entries in the conversation history."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Why the model ended its turn."""
    TOOL_CALLS = "tool-calls"
    STOP = "stop"
    CONTENT_FILTER = "content-filter"
    LENGTH = "length"
    ERROR = "error"
    OTHER = "other"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> FinishReason:
        """Normalise provider spellings (``tool_calls``, ``content_filter``)."""
        if not value:
            return cls.UNKNOWN
        normalized = str(value).strip().lower().replace("_", "-")
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


class ApprovalMode(str, Enum):
    """How tool calls are confirmed before execution."""
    YOLO = "yolo"   # bypass all approvals
    WAIT = "wait"   # ask, auto-approve after a delay
    ASK = "ask"     # ask, wait for an explicit decision

    @classmethod
    def parse(cls, value: str | ApprovalMode | None) -> ApprovalMode:
        """Parse a persisted mode string, accepting legacy spellings."""
        if isinstance(value, ApprovalMode):
            return value
        mapping = {
            "yolo": cls.YOLO,
            "wait": cls.WAIT,
            "warn": cls.WAIT,
            "ask": cls.ASK,
            "ask_first": cls.ASK,
        }
        normalized = str(value or "").strip().lower()
        if normalized not in mapping:
            raise ValueError(f"Unknown approval mode: {value!r}")
        return mapping[normalized]


class ApprovalDecisionKind(str, Enum):
    APPROVE = "approve"
    DENY_STOP = "deny_stop"
    REQUEST_CHANGES = "request_changes"


@dataclass(frozen=True)
class ApprovalDecision:
    """A human (or timer) verdict on a pending tool call.

    ``whitelist`` is only meaningful for approvals: the tool is added to
    the persisted whitelist before it runs.
    """
    kind: ApprovalDecisionKind
    feedback: str | None = None
    whitelist: bool = False

    @classmethod
    def approve(cls, *, whitelist: bool = False) -> ApprovalDecision:
        return cls(ApprovalDecisionKind.APPROVE, whitelist=whitelist)

    @classmethod
    def deny_stop(cls, feedback: str | None = None) -> ApprovalDecision:
        return cls(ApprovalDecisionKind.DENY_STOP, feedback=feedback)

    @classmethod
    def request_changes(cls, feedback: str) -> ApprovalDecision:
        return cls(ApprovalDecisionKind.REQUEST_CHANGES, feedback=feedback)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApprovalDecision:
        """Parse the wire form ``{"kind": ..., "feedback": ..., "whitelist": ...}``.

        Raises ValueError for an unknown kind.
        """
        kind = ApprovalDecisionKind(str(data.get("kind", "")).strip())
        feedback = data.get("feedback")
        if feedback is not None:
            feedback = str(feedback)
        return cls(
            kind=kind,
            feedback=feedback,
            whitelist=bool(data.get("whitelist", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"kind": self.kind.value}
        if self.feedback is not None:
            d["feedback"] = self.feedback
        if self.whitelist:
            d["whitelist"] = True
        return d


@dataclass
class ToolCallRequest:
    """A model-issued request to invoke a named tool."""
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """What a tool's execute() hands back."""
    content: Any
    is_error: bool = False


ToolExecutor = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class ToolDefinition:
    """A tool the model may call.

    ``name`` is what the model sees (server-prefixed when registered
    through a server). ``tool_name`` is the bare name on that server.
    """
    name: str
    execute: ToolExecutor
    description: str = ""
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}},
    )
    server_name: str | None = None
    tool_name: str | None = None


@dataclass
class Message:
    """One entry in the conversation history."""
    role: MessageRole
    content: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    tool_call_id: str | None = None
    is_error: bool = False

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(MessageRole.USER, content)

    @classmethod
    def assistant(
        cls, content: str | None, tool_calls: list[ToolCallRequest] | None = None,
    ) -> Message:
        return cls(MessageRole.ASSISTANT, content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, tool_call_id: str, content: str, *, is_error: bool = False) -> Message:
        return cls(
            MessageRole.TOOL, content, tool_call_id=tool_call_id, is_error=is_error,
        )


@dataclass
class GenerateResult:
    """One model turn as returned by a LanguageModelProvider."""
    messages: list[Message]
    finish_reason: FinishReason
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    text: str | None = None
    reasoning: str | None = None


@dataclass
class ApprovalRequest:
    """A tool call awaiting a human decision.

    Times are epoch seconds.
    """
    tool_call_id: str
    tool_name: str
    args: dict[str, Any]
    mode: ApprovalMode
    server_name: str | None = None
    request_id: str = field(default_factory=_make_id)
    requested_at: float = field(default_factory=_now)
    auto_approve_at: float | None = None


@dataclass
class WhitelistEntry:
    """A tool exempted from approval. ``id`` is the model-facing tool name."""
    id: str
    server_name: str
    tool_name: str
    created_at: float = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "serverName": self.server_name,
            "toolName": self.tool_name,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WhitelistEntry:
        return cls(
            id=str(data["id"]),
            server_name=str(data.get("serverName", data.get("server_name", ""))),
            tool_name=str(data.get("toolName", data.get("tool_name", ""))),
            created_at=float(data.get("createdAt", data.get("created_at", 0.0))),
        )


@dataclass
class ToolApprovalSettings:
    """Persisted approval mode plus whitelist."""
    mode: ApprovalMode = ApprovalMode.ASK
    whitelist: list[WhitelistEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "whitelist": [entry.to_dict() for entry in self.whitelist],
        }


@dataclass
class BufferedToolOutput:
    """Raw tool output kept out of the model's context."""
    id: str
    tool_name: str
    content: str
    timestamp: float = field(default_factory=_now)


@dataclass
class RunContext:
    """Optional material a caller attaches to a run."""
    video_url: str | None = None


@dataclass
class RunOptions:
    system_prompt: str | None = None
    max_tool_iterations: int | None = None
    server_filter: list[str] | None = None
