"""Tests for ApprovalGate: settle-once semantics, timers and cancellation."""
from __future__ import annotations

import asyncio
import time

import pytest

from agentgate.engine.approval import (
    CANCELLED_BY_USER,
    ApprovalGate,
    denial_message,
    parse_decision,
)
from agentgate.engine.errors import InvalidDecisionError
from agentgate.engine.models import (
    ApprovalDecision,
    ApprovalDecisionKind,
    ApprovalMode,
    ToolCallRequest,
)


def _call() -> ToolCallRequest:
    return ToolCallRequest(id="call-1", name="tasks__create_task", arguments={"title": "x"})


async def _wait_for_pending(gate: ApprovalGate):
    for _ in range(200):
        pending = gate.pending_requests()
        if pending:
            return pending[0]
        await asyncio.sleep(0.01)
    raise AssertionError("no pending request")


@pytest.mark.asyncio
async def test_user_decision_settles_request() -> None:
    events: list[dict] = []

    async def record(event: dict) -> None:
        events.append(event)

    gate = ApprovalGate(event_callback=record)
    task = asyncio.create_task(gate.request(_call(), ApprovalMode.ASK, "tasks"))
    request = await _wait_for_pending(gate)
    assert gate.has_pending(request.request_id)
    assert request.args == {"title": "x"}
    assert request.server_name == "tasks"

    assert gate.resolve(request.request_id, ApprovalDecision.approve()) is True
    outcome = await task

    assert outcome.decision.kind == ApprovalDecisionKind.APPROVE
    assert outcome.source == "user"
    assert outcome.request.request_id == request.request_id
    assert not gate.has_pending(request.request_id)
    assert [e["event"] for e in events] == ["tool_approval_required", "tool_approval_resolved"]
    assert events[0]["mode"] == "ask"


@pytest.mark.asyncio
async def test_resolving_twice_only_counts_once() -> None:
    gate = ApprovalGate()
    task = asyncio.create_task(gate.request(_call(), ApprovalMode.ASK))
    request = await _wait_for_pending(gate)

    assert gate.resolve(request.request_id, ApprovalDecision.deny_stop("no"))
    assert not gate.resolve(request.request_id, ApprovalDecision.approve())
    outcome = await task
    assert outcome.decision.kind == ApprovalDecisionKind.DENY_STOP
    assert outcome.decision.feedback == "no"


def test_resolve_unknown_request_returns_false() -> None:
    assert ApprovalGate().resolve("missing", ApprovalDecision.approve()) is False


@pytest.mark.asyncio
async def test_wait_mode_timer_approves() -> None:
    gate = ApprovalGate(auto_approve_delay=0.05)
    started = time.monotonic()
    outcome = await gate.request(_call(), ApprovalMode.WAIT)

    assert time.monotonic() - started >= 0.04
    assert outcome.decision.kind == ApprovalDecisionKind.APPROVE
    assert not outcome.decision.whitelist
    assert outcome.source == "timer"
    assert outcome.request.auto_approve_at == pytest.approx(
        outcome.request.requested_at + 0.05
    )


@pytest.mark.asyncio
async def test_user_decision_beats_wait_timer() -> None:
    gate = ApprovalGate(auto_approve_delay=0.2)
    task = asyncio.create_task(gate.request(_call(), ApprovalMode.WAIT))
    request = await _wait_for_pending(gate)
    gate.resolve(request.request_id, ApprovalDecision.deny_stop())

    outcome = await task
    assert outcome.source == "user"
    assert outcome.decision.kind == ApprovalDecisionKind.DENY_STOP
    # The cancelled timer must not fire into a finished request.
    await asyncio.sleep(0.3)
    assert not gate.has_pending(request.request_id)


@pytest.mark.asyncio
async def test_ask_mode_has_no_deadline() -> None:
    gate = ApprovalGate(auto_approve_delay=0.01)
    task = asyncio.create_task(gate.request(_call(), ApprovalMode.ASK))
    request = await _wait_for_pending(gate)
    await asyncio.sleep(0.05)

    assert request.auto_approve_at is None
    assert not task.done()
    gate.cancel_all_pending()
    await task


@pytest.mark.asyncio
async def test_cancel_all_pending_denies_with_reason() -> None:
    gate = ApprovalGate()
    first = asyncio.create_task(gate.request(_call(), ApprovalMode.ASK))
    second = asyncio.create_task(
        gate.request(ToolCallRequest(id="call-2", name="tasks__delete"), ApprovalMode.WAIT)
    )
    for _ in range(200):
        if len(gate.pending_requests()) == 2:
            break
        await asyncio.sleep(0.01)

    assert gate.cancel_all_pending("Session closed") == 2
    for task in (first, second):
        outcome = await task
        assert outcome.source == "cancel"
        assert outcome.decision.kind == ApprovalDecisionKind.DENY_STOP
        assert outcome.decision.feedback == "Session closed"
    assert gate.pending_requests() == []
    assert gate.cancel_all_pending() == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_removes_pending_entry() -> None:
    gate = ApprovalGate()
    task = asyncio.create_task(gate.request(_call(), ApprovalMode.WAIT))
    request = await _wait_for_pending(gate)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert not gate.has_pending(request.request_id)


def test_denial_message() -> None:
    assert denial_message(ApprovalDecision.deny_stop()) == CANCELLED_BY_USER
    assert denial_message(ApprovalDecision.deny_stop("   ")) == CANCELLED_BY_USER
    assert denial_message(ApprovalDecision.deny_stop(" too risky ")) == "User feedback: too risky"


class TestParseDecision:
    def test_approve_with_whitelist(self) -> None:
        decision = parse_decision({"kind": "approve", "whitelist": True})
        assert decision.kind == ApprovalDecisionKind.APPROVE
        assert decision.whitelist

    def test_request_changes_strips_feedback(self) -> None:
        decision = parse_decision({"kind": "request_changes", "feedback": "  use Beta  "})
        assert decision.feedback == "use Beta"

    @pytest.mark.parametrize("data", [
        {"kind": "request_changes"},
        {"kind": "request_changes", "feedback": "   "},
        {"kind": "maybe"},
        ["approve"],
        None,
    ])
    def test_rejects_invalid(self, data) -> None:
        with pytest.raises(InvalidDecisionError):
            parse_decision(data)
