"""YAML configuration loader.

Loads a single YAML file on top of the env-var defaults.
When no YAML is provided, EngineConfig.from_env() is used as-is.

Example YAML:
    engine:
      max_tool_iterations: 20
      auto_approve_delay_seconds: 15
      settings_path: ~/.agentgate/tool_approval.json
      system_prompt: |
        You are a helpful AI that can call tools...

    provider:
      type: deepseek
      model: deepseek-chat
      api_key_env: DEEPSEEK_API_KEY
      timeout_seconds: 120

    servers:
      Work Items:
        tools: [create_task, list_projects]
      Fill Template: {}
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import EngineConfig

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".agentgate"
CONFIG_FILE_NAME = "agentgate.yaml"


@dataclass
class ProviderConfig:
    """Configuration for the language-model provider."""
    type: str = "openai"  # "openai" or "deepseek"
    model: str | None = None
    base_url: str | None = None
    api_key_env: str | None = None
    timeout_seconds: float = 120.0
    temperature: float | None = None


@dataclass
class ServerConfig:
    """Per-server options. ``tools`` limits which tools are exposed."""
    name: str
    tools: list[str] | None = None


@dataclass
class AgentGateConfig:
    """Complete parsed YAML configuration."""
    engine: EngineConfig
    provider: ProviderConfig
    servers: dict[str, ServerConfig] = field(default_factory=dict)


def find_config_file(cwd: str | Path | None = None) -> Path | None:
    """Auto-discover .agentgate/agentgate.yaml (preferred) or agentgate.yaml."""
    base = Path(cwd) if cwd else Path.cwd()
    for candidate in (base / CONFIG_DIR_NAME / CONFIG_FILE_NAME, base / CONFIG_FILE_NAME):
        if candidate.is_file():
            logger.info("find_config_file: using %s", candidate)
            return candidate
    logger.debug("find_config_file: no config under %s", base)
    return None


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' section must be a mapping, got {type(value).__name__}")
    return value


def load_yaml_config(path: str | Path) -> AgentGateConfig:
    """Load and parse a YAML config file.

    Values missing from the file fall back to EngineConfig.from_env().
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists()
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute()
        )
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping")

    top_sections = sorted(raw.keys())
    logger.info(
        "Parsed YAML config %s, sections: %s",
        path.name, ", ".join(top_sections) if top_sections else "(empty)",
    )

    # ── Engine config ──────────────────────────────────────────
    defaults = EngineConfig.from_env()
    engine_raw = _section(raw, "engine")
    settings_path = engine_raw.get("settings_path", defaults.settings_path)
    engine = EngineConfig(
        max_tool_iterations=int(engine_raw.get(
            "max_tool_iterations", defaults.max_tool_iterations
        )),
        auto_approve_delay_seconds=float(engine_raw.get(
            "auto_approve_delay_seconds", defaults.auto_approve_delay_seconds
        )),
        system_prompt=engine_raw.get("system_prompt") or defaults.system_prompt,
        settings_path=os.path.expanduser(str(settings_path)),
        log_level=engine_raw.get("log_level", defaults.log_level),
    )

    # ── Provider ───────────────────────────────────────────────
    provider_raw = _section(raw, "provider")
    temperature = provider_raw.get("temperature")
    provider = ProviderConfig(
        type=str(provider_raw.get("type", ProviderConfig.type)).lower(),
        model=provider_raw.get("model"),
        base_url=provider_raw.get("base_url"),
        api_key_env=provider_raw.get("api_key_env"),
        timeout_seconds=float(provider_raw.get(
            "timeout_seconds", ProviderConfig.timeout_seconds
        )),
        temperature=float(temperature) if temperature is not None else None,
    )

    # ── Servers ────────────────────────────────────────────────
    servers: dict[str, ServerConfig] = {}
    for name, cfg in _section(raw, "servers").items():
        cfg = cfg or {}
        tools = cfg.get("tools")
        servers[str(name)] = ServerConfig(
            name=str(name),
            tools=[str(t) for t in tools] if tools is not None else None,
        )

    logger.info(
        "load_yaml_config: provider=%s model=%s servers=%d",
        provider.type, provider.model or "(default)", len(servers),
    )
    return AgentGateConfig(engine=engine, provider=provider, servers=servers)
