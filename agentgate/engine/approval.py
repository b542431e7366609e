"""Human approval gate for tool calls.

Each request gets an asyncio Future keyed by request_id. The future is
settled exactly once: by resolve() from the UI, by the auto-approve timer
in "wait" mode, or by cancel_all_pending(). Later attempts are ignored.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

from .config import EventCallback, fire_event
from .errors import InvalidDecisionError
from .models import (
    ApprovalDecision,
    ApprovalDecisionKind,
    ApprovalMode,
    ApprovalRequest,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)

DEFAULT_AUTO_APPROVE_DELAY = 15.0
CANCELLED_BY_USER = "Tool execution cancelled by user"
FEEDBACK_PREFIX = "User feedback: "


def denial_message(decision: ApprovalDecision) -> str:
    """Human-readable reason for a deny_stop decision."""
    feedback = (decision.feedback or "").strip()
    if feedback:
        return f"{FEEDBACK_PREFIX}{feedback}"
    return CANCELLED_BY_USER


@dataclass(frozen=True)
class ApprovalOutcome:
    """A settled approval request.

    ``source`` is "user", "timer" (wait-mode auto-approve) or "cancel".
    """
    request: ApprovalRequest
    decision: ApprovalDecision
    source: str


@dataclass
class _PendingApproval:
    request: ApprovalRequest
    future: asyncio.Future[ApprovalDecision]
    timer: asyncio.TimerHandle | None = None
    source: str = "user"


class ApprovalGate:
    """Tracks pending approval requests for one orchestrator."""

    def __init__(
        self,
        event_callback: EventCallback | None = None,
        auto_approve_delay: float = DEFAULT_AUTO_APPROVE_DELAY,
    ) -> None:
        self._event_callback = event_callback
        self._auto_approve_delay = auto_approve_delay
        self._pending: dict[str, _PendingApproval] = {}

    @property
    def auto_approve_delay(self) -> float:
        return self._auto_approve_delay

    def pending_requests(self) -> list[ApprovalRequest]:
        return [entry.request for entry in self._pending.values()]

    def has_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    async def request(
        self,
        tool_call: ToolCallRequest,
        mode: ApprovalMode,
        server_name: str | None = None,
    ) -> ApprovalOutcome:
        """Register a pending request and wait for its decision."""
        loop = asyncio.get_running_loop()
        approval = ApprovalRequest(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            args=dict(tool_call.arguments),
            mode=mode,
            server_name=server_name,
        )
        request_id = approval.request_id
        entry = _PendingApproval(request=approval, future=loop.create_future())

        if mode == ApprovalMode.WAIT:
            approval.auto_approve_at = approval.requested_at + self._auto_approve_delay
            entry.timer = loop.call_later(
                self._auto_approve_delay, self._auto_approve, request_id,
            )
        self._pending[request_id] = entry

        event: dict[str, Any] = {
            "event": "tool_approval_required",
            "request_id": request_id,
            "tool_call_id": tool_call.id,
            "tool_name": tool_call.name,
            "server_name": server_name,
            "arguments": approval.args,
            "mode": mode.value,
        }
        if approval.auto_approve_at is not None:
            event["auto_approve_at"] = approval.auto_approve_at
        await fire_event(self._event_callback, event)
        logger.info(
            "Approval request queued request_id=%s tool=%s mode=%s",
            request_id[:8], tool_call.name, mode.value,
        )

        try:
            decision = await entry.future
        finally:
            # Also reached when the awaiting task itself is cancelled.
            self._discard(request_id)

        logger.info(
            "Approval request resolved request_id=%s decision=%s source=%s",
            request_id[:8], decision.kind.value, entry.source,
        )
        # Auxiliary event; the engine emits the step event that follows.
        await fire_event(self._event_callback, {
            "event": "tool_approval_resolved",
            "request_id": request_id,
            "tool_name": tool_call.name,
            "decision": decision.kind.value,
            "source": entry.source,
        })
        return ApprovalOutcome(request=approval, decision=decision, source=entry.source)

    def resolve(self, request_id: str, decision: ApprovalDecision) -> bool:
        """Settle a pending request. Returns False if it is unknown or already settled."""
        return self._settle(request_id, decision, "user")

    def cancel_all_pending(self, reason: str | None = None) -> int:
        """Deny every pending request with ``reason`` as feedback."""
        decision = ApprovalDecision.deny_stop(reason)
        cancelled = 0
        for request_id in list(self._pending):
            if self._settle(request_id, decision, "cancel"):
                cancelled += 1
        self._pending.clear()
        if cancelled:
            logger.info("Cancelled %d pending approval requests", cancelled)
        return cancelled

    # ── Internals ──

    def _auto_approve(self, request_id: str) -> None:
        entry = self._pending.get(request_id)
        if entry is not None:
            logger.info(
                "Auto-approving request_id=%s after %.1fs",
                request_id[:8], time.time() - entry.request.requested_at,
            )
        self._settle(request_id, ApprovalDecision.approve(), "timer")

    def _settle(self, request_id: str, decision: ApprovalDecision, source: str) -> bool:
        entry = self._pending.pop(request_id, None)
        if entry is None or entry.future.done():
            logger.warning(
                "Approval resolve ignored request_id=%s (missing or already done)",
                request_id[:8],
            )
            return False
        if entry.timer is not None:
            entry.timer.cancel()
        entry.source = source
        entry.future.set_result(decision)
        return True

    def _discard(self, request_id: str) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()


def parse_decision(data: Any) -> ApprovalDecision:
    """Validate a decision coming from a UI or API client.

    Raises InvalidDecisionError for an unknown kind or for
    request_changes without feedback.
    """
    if not isinstance(data, dict):
        raise InvalidDecisionError("decision must be an object")
    try:
        decision = ApprovalDecision.from_dict(data)
    except ValueError:
        raise InvalidDecisionError(f"unknown kind {data.get('kind')!r}") from None
    if decision.kind == ApprovalDecisionKind.REQUEST_CHANGES:
        feedback = (decision.feedback or "").strip()
        if not feedback:
            raise InvalidDecisionError("request_changes requires feedback")
        decision = ApprovalDecision.request_changes(feedback)
    return decision
