"""Bridge between the orchestration engine and its frontends.

Creates an EngineConfig with event_callback wired to an EventBus,
manages the engine lifecycle, and exposes the approval and settings
commands used by the HTTP server and the CLI.
"""
from __future__ import annotations

import logging
import time
from pathlib import Path

from agentgate.adapters.event_bus import EventBus
from agentgate.adapters.events import RunFinished
from agentgate.adapters.settings_store import JsonSettingsStore
from agentgate.engine.approval_policy import ToolApprovalSettingsStore
from agentgate.engine.config import EngineConfig
from agentgate.engine.engine import OrchestrationEngine
from agentgate.engine.models import (
    ApprovalDecision,
    ApprovalMode,
    ApprovalRequest,
    RunContext,
    RunOptions,
    ToolApprovalSettings,
)
from agentgate.engine.providers import build_provider
from agentgate.engine.providers.base import LanguageModelProvider
from agentgate.engine.tool_registry import ToolRegistry, load_tools_file
from agentgate.engine.yaml_config import AgentGateConfig, ProviderConfig

logger = logging.getLogger(__name__)


class OrchestratorBridge:
    """Owns one engine, its event bus and its approval settings.

    Usage:
        bridge = OrchestratorBridge()
        bridge.configure(yaml_config=cfg, tools_file="tools.py")
        await bridge.run("Create a task from this transcript")
    """

    def __init__(self) -> None:
        self.event_bus = EventBus()
        self.tool_registry = ToolRegistry()
        self._engine: OrchestrationEngine | None = None
        self._provider: LanguageModelProvider | None = None
        self._settings_store: ToolApprovalSettingsStore | None = None
        self._configured = False

    @property
    def configured(self) -> bool:
        return self._configured

    @property
    def running(self) -> bool:
        """Whether a run is currently in progress."""
        return self._engine is not None and self._engine.running

    @property
    def engine(self) -> OrchestrationEngine | None:
        return self._engine

    def configure(
        self,
        yaml_config: AgentGateConfig | None = None,
        *,
        config: EngineConfig | None = None,
        provider: LanguageModelProvider | None = None,
        settings_store: ToolApprovalSettingsStore | None = None,
        tools_file: str | Path | None = None,
    ) -> None:
        """Build the engine.

        ``yaml_config`` supplies engine, provider and server settings;
        explicit ``config``/``provider``/``settings_store`` override it.
        """
        engine_config = config or (
            yaml_config.engine if yaml_config is not None else EngineConfig.from_env()
        )
        engine_config.event_callback = self.event_bus.make_callback()

        if tools_file is not None:
            load_tools_file(self.tool_registry, tools_file)
        if yaml_config is not None:
            for server in yaml_config.servers.values():
                self.tool_registry.set_allowed_tools(server.name, server.tools)

        if provider is None:
            provider_config = yaml_config.provider if yaml_config is not None else ProviderConfig()
            provider = build_provider(provider_config)
        self._provider = provider
        self._settings_store = settings_store or JsonSettingsStore(engine_config.settings_path)

        self._engine = OrchestrationEngine(
            provider=provider,
            tool_registry=self.tool_registry,
            settings_store=self._settings_store,
            config=engine_config,
        )
        self._configured = True
        logger.info(
            "Orchestrator configured provider=%s servers=%d",
            provider.name, len(self.tool_registry.server_names),
        )

    async def run(
        self,
        goal: str,
        context: RunContext | None = None,
        options: RunOptions | None = None,
    ) -> str | None:
        """Run a goal and report completion on the event bus."""
        if not self._configured or self._engine is None:
            raise RuntimeError("Orchestrator not configured")

        started = time.monotonic()
        try:
            result = await self._engine.run(goal, context=context, options=options)
        except Exception as exc:
            logger.exception("Orchestrator run failed")
            await self.event_bus.emit(RunFinished(
                success=False,
                error=f"{type(exc).__name__}: {exc}",
                duration_seconds=time.monotonic() - started,
            ))
            raise
        await self.event_bus.emit(RunFinished(
            success=True,
            result=result,
            duration_seconds=time.monotonic() - started,
        ))
        return result

    async def shutdown(self) -> None:
        """Deny pending approvals, close the provider and the bus."""
        if self._engine is not None:
            self._engine.cancel_all_pending("Server shutting down")
        if self._provider is not None:
            await self._provider.close()
        self.event_bus.close()

    # ── Approvals ──

    def resolve_approval(self, request_id: str, decision: ApprovalDecision) -> bool:
        if self._engine is None:
            return False
        return self._engine.resolve_approval(request_id, decision)

    def cancel_all_pending(self, reason: str | None = None) -> int:
        if self._engine is None:
            return 0
        return self._engine.cancel_all_pending(reason)

    def pending_approvals(self) -> list[ApprovalRequest]:
        if self._engine is None:
            return []
        return self._engine.pending_approvals()

    # ── Settings ──

    def _store(self) -> ToolApprovalSettingsStore:
        if self._settings_store is None:
            raise RuntimeError("Orchestrator not configured")
        return self._settings_store

    def get_settings(self) -> ToolApprovalSettings:
        return self._store().load()

    def set_mode(self, mode: ApprovalMode) -> None:
        self._store().set_mode(mode)

    def remove_whitelist_entry(self, entry_id: str) -> bool:
        return self._store().remove_whitelist_entry(entry_id)
