from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from agentgate.engine.errors import ToolRegistrationError
from agentgate.engine.tool_registry import (
    ToolRegistry,
    load_tools_file,
    qualified_tool_name,
    validate_server_name,
)


def test_qualified_name_sanitizes_both_parts() -> None:
    assert qualified_tool_name("Work Items", "create.task") == "Work_Items__create_task"
    assert qualified_tool_name("tasks", "list-projects") == "tasks__list-projects"


@pytest.mark.parametrize("name", ["", "   ", "bad/name", "emoji✓"])
def test_invalid_server_names(name: str) -> None:
    with pytest.raises(ToolRegistrationError):
        validate_server_name(name)


def test_register_exposes_qualified_definition() -> None:
    registry = ToolRegistry()
    execute = AsyncMock()
    definition = registry.register(
        "Work Items", "create_task", execute,
        description="Create a task",
        input_schema={"type": "object", "properties": {"title": {"type": "string"}}},
    )

    assert definition.name == "Work_Items__create_task"
    assert definition.server_name == "Work Items"
    assert definition.tool_name == "create_task"
    assert registry.server_names == ["Work Items"]
    assert registry.collect_tools() == {"Work_Items__create_task": definition}


def test_standalone_tools_keep_their_name() -> None:
    registry = ToolRegistry()
    definition = registry.register(None, "fill_template", AsyncMock())
    assert definition.name == "fill_template"
    assert definition.server_name is None
    assert "fill_template" in registry.collect_tools(server_filter=["other"])


def test_duplicate_registration_rejected() -> None:
    registry = ToolRegistry()
    registry.register("tasks", "create", AsyncMock())
    with pytest.raises(ToolRegistrationError):
        registry.register("tasks", "create", AsyncMock())
    with pytest.raises(ToolRegistrationError):
        registry.register_server("tasks")


def test_decorator_uses_function_name_and_docstring() -> None:
    registry = ToolRegistry()

    @registry.tool("tasks")
    async def list_projects(args):
        """List every project."""
        return []

    definition = registry.collect_tools()["tasks__list_projects"]
    assert definition.description == "List every project."
    assert definition.execute is list_projects


def test_server_filter_and_allow_list() -> None:
    registry = ToolRegistry()
    registry.register("tasks", "create", AsyncMock())
    registry.register("tasks", "delete", AsyncMock())
    registry.register("github", "open_issue", AsyncMock())
    registry.set_allowed_tools("tasks", ["create"])

    assert sorted(registry.collect_tools()) == ["github__open_issue", "tasks__create"]
    assert sorted(registry.collect_tools(["tasks"])) == ["tasks__create"]
    assert registry.collect_tools(["unknown"]) == {}

    registry.set_allowed_tools("tasks", None)
    assert sorted(registry.collect_tools(["tasks"])) == ["tasks__create", "tasks__delete"]


def test_unregister_server() -> None:
    registry = ToolRegistry()
    registry.register("tasks", "create", AsyncMock())
    registry.unregister_server("tasks")
    assert registry.collect_tools() == {}


def test_load_tools_file(tmp_path: Path) -> None:
    tools_file = tmp_path / "my_tools.py"
    tools_file.write_text(
        "def register_tools(registry):\n"
        "    @registry.tool('tasks', description='Create a task')\n"
        "    async def create_task(args):\n"
        "        return {'id': 1}\n"
    )
    registry = ToolRegistry()
    load_tools_file(registry, tools_file)
    assert list(registry.collect_tools()) == ["tasks__create_task"]


def test_load_tools_file_without_entry_point(tmp_path: Path) -> None:
    tools_file = tmp_path / "empty_tools.py"
    tools_file.write_text("X = 1\n")
    with pytest.raises(ToolRegistrationError, match="register_tools"):
        load_tools_file(ToolRegistry(), tools_file)
