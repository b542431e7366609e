"""Tests for OrchestratorBridge wiring."""
from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from agentgate.adapters.events import RunFinished, ToolApprovalRequired
from agentgate.adapters.orchestrator import OrchestratorBridge
from agentgate.adapters.settings_store import JsonSettingsStore
from agentgate.engine.config import EngineConfig
from agentgate.engine.models import (
    ApprovalDecision,
    ApprovalMode,
    FinishReason,
    GenerateResult,
    Message,
    ToolCallRequest,
)
from agentgate.engine.yaml_config import AgentGateConfig, ProviderConfig, ServerConfig


def _provider(*results: GenerateResult) -> AsyncMock:
    provider = AsyncMock()
    provider.name = "fake"
    provider.generate = AsyncMock(side_effect=list(results))
    return provider


def _stop(text: str) -> GenerateResult:
    return GenerateResult(
        messages=[Message.assistant(text)], finish_reason=FinishReason.STOP, text=text,
    )


def test_run_requires_configure() -> None:
    bridge = OrchestratorBridge()
    assert not bridge.configured
    assert bridge.pending_approvals() == []
    with pytest.raises(RuntimeError, match="not configured"):
        asyncio.run(bridge.run("go"))


@pytest.mark.asyncio
async def test_successful_run_emits_run_finished(tmp_path: Path) -> None:
    bridge = OrchestratorBridge()
    bridge.configure(
        config=EngineConfig(settings_path=str(tmp_path / "s.json")),
        provider=_provider(_stop("done")),
    )

    assert await bridge.run("go") == "done"

    events = []
    while bridge.event_bus.qsize():
        events.append(await bridge.event_bus._queue.get())
    assert [e.event_type for e in events] == ["start", "final_result", "run_finished"]
    assert isinstance(events[-1], RunFinished)
    assert events[-1].success
    assert events[-1].result == "done"


@pytest.mark.asyncio
async def test_failed_run_emits_error_and_reraises(tmp_path: Path) -> None:
    provider = _provider()
    provider.generate = AsyncMock(side_effect=RuntimeError("network down"))
    bridge = OrchestratorBridge()
    bridge.configure(config=EngineConfig(settings_path=str(tmp_path / "s.json")), provider=provider)

    with pytest.raises(RuntimeError):
        await bridge.run("go")
    events = []
    while bridge.event_bus.qsize():
        events.append(await bridge.event_bus._queue.get())
    assert not events[-1].success
    assert "network down" in events[-1].error


@pytest.mark.asyncio
async def test_approval_flows_through_event_bus(tmp_path: Path) -> None:
    call = ToolCallRequest(id="c1", name="tasks__create_task", arguments={"title": "x"})
    bridge = OrchestratorBridge()
    bridge.tool_registry.register("tasks", "create_task", AsyncMock(return_value="ok"))
    bridge.configure(
        config=EngineConfig(settings_path=str(tmp_path / "s.json")),
        provider=_provider(
            GenerateResult(
                messages=[Message.assistant(None, [call])],
                finish_reason=FinishReason.TOOL_CALLS,
                tool_calls=[call],
            ),
            _stop("created"),
        ),
    )

    async def approve_first_request() -> None:
        async for event in bridge.event_bus.consume():
            if isinstance(event, ToolApprovalRequired):
                assert bridge.resolve_approval(event.request_id, ApprovalDecision.approve(whitelist=True))
                return

    approver = asyncio.create_task(approve_first_request())
    assert await bridge.run("go") == "created"
    await approver

    entries = JsonSettingsStore(tmp_path / "s.json").load().whitelist
    assert [e.id for e in entries] == ["tasks__create_task"]


def test_yaml_servers_limit_exposed_tools(tmp_path: Path) -> None:
    bridge = OrchestratorBridge()
    bridge.tool_registry.register("tasks", "create_task", AsyncMock())
    bridge.tool_registry.register("tasks", "delete_task", AsyncMock())
    yaml_config = AgentGateConfig(
        engine=EngineConfig(settings_path=str(tmp_path / "s.json")),
        provider=ProviderConfig(),
        servers={"tasks": ServerConfig(name="tasks", tools=["create_task"])},
    )
    bridge.configure(yaml_config, provider=_provider())

    assert sorted(bridge.tool_registry.collect_tools()) == ["tasks__create_task"]
    assert bridge.engine.config.event_callback is not None


def test_settings_commands(tmp_path: Path) -> None:
    bridge = OrchestratorBridge()
    bridge.configure(
        config=EngineConfig(settings_path=str(tmp_path / "s.json")),
        provider=_provider(),
    )
    bridge.set_mode(ApprovalMode.WAIT)
    assert bridge.get_settings().mode == ApprovalMode.WAIT
    assert bridge.remove_whitelist_entry("nope") is False


@pytest.mark.asyncio
async def test_shutdown_closes_provider_and_bus(tmp_path: Path) -> None:
    provider = _provider()
    bridge = OrchestratorBridge()
    bridge.configure(config=EngineConfig(settings_path=str(tmp_path / "s.json")), provider=provider)

    await bridge.shutdown()

    provider.close.assert_awaited_once()
    assert bridge.event_bus.closed
