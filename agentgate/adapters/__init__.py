"""Adapters package - Bridge between engine and frontends.

This package contains the orchestrator bridge, event bus, and settings
persistence that connect the engine to the HTTP server and the CLI.
"""
from __future__ import annotations

__all__ = [
    "OrchestratorBridge",
    "EventBus",
    "JsonSettingsStore",
]

from agentgate.adapters.orchestrator import OrchestratorBridge
from agentgate.adapters.event_bus import EventBus
from agentgate.adapters.settings_store import JsonSettingsStore
