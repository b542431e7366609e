"""Registry of tools the model may call.

Tools are grouped by server. A tool registered on server ``Work Items``
as ``create_task`` is exposed to the model as ``Work_Items__create_task``.

Example:
    registry = ToolRegistry()

    @registry.tool("tasks", description="Create a task")
    async def create_task(args):
        return {"id": 42, "title": args["title"]}
"""
from __future__ import annotations

import importlib.util
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ToolRegistrationError
from .models import ToolDefinition, ToolExecutor

logger = logging.getLogger(__name__)

SERVER_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9 _-]+$")
TOOL_NAME_SEPARATOR = "__"


def validate_server_name(name: str) -> None:
    if not name or not name.strip():
        raise ToolRegistrationError(name, "server name cannot be empty")
    if not SERVER_NAME_PATTERN.match(name):
        raise ToolRegistrationError(
            name,
            "only letters, numbers, spaces, underscores, and hyphens are allowed",
        )


def sanitize_name(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]", "_", name)


def qualified_tool_name(server_name: str, tool_name: str) -> str:
    return f"{sanitize_name(server_name)}{TOOL_NAME_SEPARATOR}{sanitize_name(tool_name)}"


@dataclass
class _Server:
    name: str
    allowed_tools: frozenset[str] | None = None
    tools: dict[str, ToolDefinition] = field(default_factory=dict)


class ToolRegistry:
    """Tools grouped by server, collected once per run."""

    def __init__(self) -> None:
        self._servers: dict[str, _Server] = {}
        # Tools registered without a server, exposed under their own name.
        self._standalone: dict[str, ToolDefinition] = {}

    @property
    def server_names(self) -> list[str]:
        return list(self._servers)

    def register_server(
        self, name: str, allowed_tools: Iterable[str] | None = None,
    ) -> None:
        """Declare a server. ``allowed_tools`` limits which of its tools are exposed."""
        validate_server_name(name)
        if name in self._servers:
            raise ToolRegistrationError(name, "server already registered")
        self._servers[name] = _Server(
            name=name,
            allowed_tools=frozenset(allowed_tools) if allowed_tools is not None else None,
        )
        logger.info("Tool server registered: %s", name)

    def set_allowed_tools(self, name: str, allowed_tools: Iterable[str] | None) -> None:
        """Replace a server's allow-list, declaring the server if needed."""
        if name not in self._servers:
            self.register_server(name, allowed_tools)
            return
        self._servers[name].allowed_tools = (
            frozenset(allowed_tools) if allowed_tools is not None else None
        )

    def unregister_server(self, name: str) -> None:
        self._servers.pop(name, None)

    def register(
        self,
        server_name: str | None,
        tool_name: str,
        execute: ToolExecutor,
        *,
        description: str = "",
        input_schema: dict[str, Any] | None = None,
    ) -> ToolDefinition:
        """Register a tool. Unknown servers are declared on first use."""
        if not tool_name:
            raise ToolRegistrationError(tool_name, "tool name cannot be empty")
        schema = input_schema or {"type": "object", "properties": {}}

        if server_name is None:
            definition = ToolDefinition(
                name=tool_name, execute=execute, description=description,
                input_schema=schema, tool_name=tool_name,
            )
            if self._name_taken(definition.name):
                raise ToolRegistrationError(tool_name, "tool already registered")
            self._standalone[tool_name] = definition
            logger.debug("Tool registered: %s", tool_name)
            return definition

        if server_name not in self._servers:
            self.register_server(server_name)
        server = self._servers[server_name]
        definition = ToolDefinition(
            name=qualified_tool_name(server_name, tool_name),
            execute=execute,
            description=description,
            input_schema=schema,
            server_name=server_name,
            tool_name=tool_name,
        )
        if self._name_taken(definition.name):
            raise ToolRegistrationError(definition.name, "tool already registered")
        server.tools[tool_name] = definition
        logger.debug("Tool registered: %s", definition.name)
        return definition

    def tool(
        self,
        server_name: str | None = None,
        *,
        name: str | None = None,
        description: str = "",
        input_schema: dict[str, Any] | None = None,
    ) -> Callable[[ToolExecutor], ToolExecutor]:
        """Decorator form of register()."""
        def decorator(func: ToolExecutor) -> ToolExecutor:
            self.register(
                server_name,
                name or func.__name__,
                func,
                description=description or (func.__doc__ or "").strip(),
                input_schema=input_schema,
            )
            return func
        return decorator

    def collect_tools(
        self, server_filter: Iterable[str] | None = None,
    ) -> dict[str, ToolDefinition]:
        """Model-facing name → definition for every exposed tool.

        With ``server_filter``, only tools on the named servers are
        included; standalone tools are always included.
        """
        selected = set(server_filter) if server_filter is not None else None
        if selected is not None:
            unknown = selected - set(self._servers)
            if unknown:
                logger.warning("Server filter names unknown servers: %s", ", ".join(sorted(unknown)))

        tools: dict[str, ToolDefinition] = dict(self._standalone)
        for server in self._servers.values():
            if selected is not None and server.name not in selected:
                continue
            for tool_name, definition in server.tools.items():
                if server.allowed_tools is not None and tool_name not in server.allowed_tools:
                    continue
                tools[definition.name] = definition
        logger.debug("Collected %d tools", len(tools))
        return tools

    def _name_taken(self, qualified: str) -> bool:
        if qualified in self._standalone:
            return True
        return any(
            d.name == qualified
            for server in self._servers.values()
            for d in server.tools.values()
        )


def load_tools_file(registry: ToolRegistry, path: str | Path) -> None:
    """Register tools from a Python file.

    The file must export a register_tools(registry) function.
    """
    path = Path(path)
    spec = importlib.util.spec_from_file_location(f"agentgate_tools_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise ToolRegistrationError(str(path), "cannot load tools file")

    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    register_fn = getattr(module, "register_tools", None)
    if register_fn is None:
        raise ToolRegistrationError(
            str(path), "file must export a register_tools(registry) function",
        )
    register_fn(registry)
    logger.info("Loaded tools from %s", path)
