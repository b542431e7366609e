"""Tests for typed events and the EventBus."""
from __future__ import annotations

import asyncio

import pytest

from agentgate.adapters.event_bus import EventBus
from agentgate.adapters.events import (
    OrchestratorEvent,
    RunFinished,
    ToolApprovalRequired,
    ToolCallCompleted,
    ToolCallStarted,
    dict_to_event,
    event_to_dict,
)


def test_dict_to_event_builds_typed_event() -> None:
    event = dict_to_event({
        "event": "tool_approval_required",
        "request_id": "r1",
        "tool_name": "tasks__create_task",
        "arguments": {"title": "x"},
        "mode": "wait",
        "auto_approve_at": 100.0,
        "unexpected": "dropped",
    })
    assert isinstance(event, ToolApprovalRequired)
    assert event.event_type == "tool_approval_required"
    assert event.request_id == "r1"
    assert event.auto_approve_at == 100.0


def test_unknown_event_type_falls_back_to_base() -> None:
    event = dict_to_event({"event": "mystery", "payload": 1})
    assert type(event) is OrchestratorEvent
    assert event.event_type == "mystery"


def test_tool_call_keeps_approval_source() -> None:
    event = dict_to_event({
        "event": "tool_call",
        "tool_call_id": "c1",
        "tool_name": "tasks__create_task",
        "approval_source": "timer",
    })
    assert isinstance(event, ToolCallStarted)
    assert event.approval_source == "timer"
    assert event_to_dict(event)["approval_source"] == "timer"


def test_event_to_dict_renames_type_and_drops_none() -> None:
    d = event_to_dict(ToolCallCompleted(tool_call_id="c1", tool_name="t", result="ok"))
    assert d["event"] == "tool_result"
    assert "event_type" not in d
    assert "output_ref" not in d
    assert d["is_error"] is False


@pytest.mark.asyncio
async def test_callback_feeds_consumer_in_order() -> None:
    bus = EventBus()
    callback = bus.make_callback()
    await callback({"event": "tool_call", "tool_name": "a"})
    await callback({"event": "tool_result", "tool_name": "a", "result": "ok"})
    assert bus.qsize() == 2

    seen: list[str] = []
    async for event in bus.consume():
        seen.append(event.event_type)
        if len(seen) == 2:
            break
    assert seen == ["tool_call", "tool_result"]


@pytest.mark.asyncio
async def test_closed_bus_ignores_emits_and_stops_consumers() -> None:
    bus = EventBus()

    async def drain() -> list[OrchestratorEvent]:
        return [event async for event in bus.consume()]

    consumer = asyncio.create_task(drain())
    await bus.emit(RunFinished(result="done"))
    await asyncio.sleep(0.05)
    bus.close()
    received = await asyncio.wait_for(consumer, timeout=2.0)

    assert [e.event_type for e in received] == ["run_finished"]
    await bus.emit(RunFinished())
    assert bus.qsize() == 0


@pytest.mark.asyncio
async def test_reset_drains_and_reopens() -> None:
    bus = EventBus()
    await bus.emit(RunFinished())
    bus.close()
    bus.reset()
    assert not bus.closed
    assert bus.qsize() == 0
