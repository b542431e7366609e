"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via AGENTGATE_* env vars.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .prompts import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = str(Path.home() / ".agentgate" / "tool_approval.json")


# Optional async callback for real-time event observation.
# Signature: async def callback(event: dict[str, Any]) -> None
EventCallback = Callable[[dict[str, Any]], Awaitable[None]]


async def fire_event(
    callback: EventCallback | None,
    event: dict[str, Any],
) -> None:
    """Fire an event callback if set. Callback errors are logged, not raised."""
    if callback is None:
        return
    try:
        await callback(event)
    except Exception:
        logger.exception("Event callback failed for %s", event.get("event"))


def apply_log_level(level_name: str) -> int:
    """Set the root logger level by name. Unknown names fall back to INFO."""
    level = getattr(logging, str(level_name).strip().upper(), None)
    if not isinstance(level, int):
        logger.warning("Unknown log level %r, using INFO", level_name)
        level = logging.INFO
    logging.getLogger().setLevel(level)
    return level


@dataclass
class EngineConfig:
    """Orchestration engine configuration."""

    # Safety cap on model turns per run.
    max_tool_iterations: int = 20
    # Delay before a pending request in "wait" mode approves itself.
    auto_approve_delay_seconds: float = 15.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    # JSON file holding the approval mode and whitelist.
    settings_path: str = DEFAULT_SETTINGS_PATH

    # Logging
    log_level: str = "INFO"

    # Receives dicts like {"event": "tool_call", "tool_name": "...", ...}
    event_callback: EventCallback | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load configuration from AGENTGATE_* environment variables."""
        env_vars = {
            k: v for k, v in os.environ.items() if k.startswith("AGENTGATE_")
        }
        if env_vars:
            logger.info(
                "EngineConfig.from_env: AGENTGATE_* env overrides: %s",
                ", ".join(sorted(env_vars)),
            )
        else:
            logger.debug("EngineConfig.from_env: no AGENTGATE_* env vars set, using defaults")

        config = cls(
            max_tool_iterations=int(os.getenv(
                "AGENTGATE_MAX_TOOL_ITERATIONS", str(cls.max_tool_iterations)
            )),
            auto_approve_delay_seconds=float(os.getenv(
                "AGENTGATE_AUTO_APPROVE_SECONDS",
                str(cls.auto_approve_delay_seconds),
            )),
            system_prompt=os.getenv("AGENTGATE_SYSTEM_PROMPT") or cls.system_prompt,
            settings_path=os.getenv(
                "AGENTGATE_SETTINGS_PATH", cls.settings_path
            ),
            log_level=os.getenv("AGENTGATE_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "EngineConfig.from_env: max_tool_iterations=%d auto_approve=%.1fs settings=%s",
            config.max_tool_iterations,
            config.auto_approve_delay_seconds,
            config.settings_path,
        )
        return config
