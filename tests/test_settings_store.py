"""Tests for the JSON-backed approval settings store."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from agentgate.adapters.settings_store import JsonSettingsStore
from agentgate.engine.models import ApprovalMode, WhitelistEntry


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    store = JsonSettingsStore(tmp_path / "tool_approval.json")
    settings = store.load()
    assert settings.mode == ApprovalMode.ASK
    assert settings.whitelist == []


def test_set_mode_persists(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "tool_approval.json"
    JsonSettingsStore(path).set_mode(ApprovalMode.YOLO)

    assert JsonSettingsStore(path).load().mode == ApprovalMode.YOLO
    assert json.loads(path.read_text())["mode"] == "yolo"
    assert not path.with_suffix(".json.tmp").exists()


def test_whitelist_round_trip_uses_camel_case(tmp_path: Path) -> None:
    path = tmp_path / "tool_approval.json"
    store = JsonSettingsStore(path)
    store.add_whitelist_entry(WhitelistEntry(
        id="tasks__create_task", server_name="tasks", tool_name="create_task", created_at=10.0,
    ))

    raw = json.loads(path.read_text())
    assert raw["whitelist"] == [{
        "id": "tasks__create_task",
        "serverName": "tasks",
        "toolName": "create_task",
        "createdAt": 10.0,
    }]
    entry = JsonSettingsStore(path).load().whitelist[0]
    assert (entry.id, entry.server_name, entry.tool_name) == ("tasks__create_task", "tasks", "create_task")


def test_add_replaces_existing_entry_and_keeps_mode(tmp_path: Path) -> None:
    store = JsonSettingsStore(tmp_path / "s.json")
    store.set_mode(ApprovalMode.WAIT)
    store.add_whitelist_entry(WhitelistEntry(id="a", server_name="s", tool_name="a", created_at=1.0))
    store.add_whitelist_entry(WhitelistEntry(id="a", server_name="s", tool_name="a", created_at=2.0))

    settings = store.load()
    assert settings.mode == ApprovalMode.WAIT
    assert [e.created_at for e in settings.whitelist] == [2.0]


def test_remove_whitelist_entry(tmp_path: Path) -> None:
    store = JsonSettingsStore(tmp_path / "s.json")
    store.add_whitelist_entry(WhitelistEntry(id="a", server_name="s", tool_name="a"))
    store.add_whitelist_entry(WhitelistEntry(id="b", server_name="s", tool_name="b"))

    assert store.remove_whitelist_entry("a") is True
    assert store.remove_whitelist_entry("missing") is False
    assert [e.id for e in store.load().whitelist] == ["b"]


def test_corrupt_file_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "s.json"
    path.write_text("{not json")
    assert JsonSettingsStore(path).load().mode == ApprovalMode.ASK

    path.write_text("[1, 2, 3]")
    assert JsonSettingsStore(path).load().whitelist == []


def test_unknown_mode_and_bad_entries_are_tolerated(tmp_path: Path) -> None:
    path = tmp_path / "s.json"
    path.write_text(json.dumps({
        "mode": "sometimes",
        "whitelist": [
            {"id": "ok", "serverName": "s", "toolName": "ok"},
            {"serverName": "no id"},
            "garbage",
        ],
    }))
    settings = JsonSettingsStore(path).load()
    assert settings.mode == ApprovalMode.ASK
    assert [e.id for e in settings.whitelist] == ["ok"]


@pytest.mark.parametrize("whitelist", [5, "tasks__create_task", {"id": "a"}, True])
def test_non_list_whitelist_is_ignored(tmp_path: Path, whitelist) -> None:
    path = tmp_path / "s.json"
    path.write_text(json.dumps({"mode": "wait", "whitelist": whitelist}))

    settings = JsonSettingsStore(path).load()

    assert settings.mode == ApprovalMode.WAIT
    assert settings.whitelist == []


def test_adding_entry_repairs_bad_whitelist(tmp_path: Path) -> None:
    path = tmp_path / "s.json"
    path.write_text(json.dumps({"mode": "ask", "whitelist": 5}))
    JsonSettingsStore(path).add_whitelist_entry(
        WhitelistEntry(id="a", server_name="s", tool_name="a"),
    )
    assert [e["id"] for e in json.loads(path.read_text())["whitelist"]] == ["a"]


def test_legacy_mode_names_are_accepted(tmp_path: Path) -> None:
    path = tmp_path / "s.json"
    path.write_text(json.dumps({"mode": "warn"}))
    assert JsonSettingsStore(path).load().mode == ApprovalMode.WAIT
    path.write_text(json.dumps({"mode": "ask_first"}))
    assert JsonSettingsStore(path).load().mode == ApprovalMode.ASK


def test_edits_by_another_writer_are_seen(tmp_path: Path) -> None:
    path = tmp_path / "s.json"
    reader = JsonSettingsStore(path)
    writer = JsonSettingsStore(path)
    assert reader.load().mode == ApprovalMode.ASK
    writer.set_mode(ApprovalMode.YOLO)
    assert reader.load().mode == ApprovalMode.YOLO
