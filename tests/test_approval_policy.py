from __future__ import annotations

from agentgate.engine.approval_policy import (
    ApprovalPolicy,
    ApprovalSnapshot,
    InMemorySettingsStore,
)
from agentgate.engine.models import (
    ApprovalMode,
    ToolApprovalSettings,
    ToolCallRequest,
    WhitelistEntry,
)


def test_yolo_never_requires_approval() -> None:
    snapshot = ApprovalSnapshot(mode=ApprovalMode.YOLO)
    assert not snapshot.requires_approval("tasks__create_task")


def test_wait_and_ask_require_approval_unless_whitelisted() -> None:
    for mode in (ApprovalMode.WAIT, ApprovalMode.ASK):
        snapshot = ApprovalSnapshot(mode=mode, whitelisted=frozenset({"tasks__list"}))
        assert snapshot.requires_approval("tasks__create_task")
        assert not snapshot.requires_approval("tasks__list")


def test_snapshot_reads_current_store_state() -> None:
    store = InMemorySettingsStore()
    policy = ApprovalPolicy(store)
    before = policy.snapshot()

    store.set_mode(ApprovalMode.WAIT)
    store.add_whitelist_entry(WhitelistEntry(id="tasks__list", server_name="tasks", tool_name="list"))
    after = policy.snapshot()

    assert before.mode == ApprovalMode.ASK
    assert before.whitelisted == frozenset()
    assert after.mode == ApprovalMode.WAIT
    assert after.whitelisted == frozenset({"tasks__list"})


def test_whitelist_records_server_and_tool() -> None:
    store = InMemorySettingsStore()
    policy = ApprovalPolicy(store)
    call = ToolCallRequest(id="c1", name="Work_Items__create_task")

    entry = policy.whitelist(call, "Work Items", "create_task")

    assert entry.id == "Work_Items__create_task"
    assert entry.server_name == "Work Items"
    assert entry.tool_name == "create_task"
    assert store.load().whitelist == [entry]


def test_whitelist_standalone_tool_defaults() -> None:
    policy = ApprovalPolicy(InMemorySettingsStore())
    entry = policy.whitelist(ToolCallRequest(id="c1", name="fill_template"))
    assert entry.server_name == ""
    assert entry.tool_name == "fill_template"


def test_in_memory_store_replaces_duplicate_ids() -> None:
    store = InMemorySettingsStore()
    store.add_whitelist_entry(WhitelistEntry(id="a", server_name="s", tool_name="a", created_at=1.0))
    store.add_whitelist_entry(WhitelistEntry(id="a", server_name="s", tool_name="a", created_at=2.0))
    entries = store.load().whitelist
    assert [e.created_at for e in entries] == [2.0]


def test_in_memory_store_remove() -> None:
    store = InMemorySettingsStore(ToolApprovalSettings(
        whitelist=[WhitelistEntry(id="a", server_name="s", tool_name="a")],
    ))
    assert store.remove_whitelist_entry("a") is True
    assert store.remove_whitelist_entry("a") is False
    assert store.load().whitelist == []


def test_in_memory_load_returns_copy() -> None:
    store = InMemorySettingsStore()
    settings = store.load()
    settings.whitelist.append(WhitelistEntry(id="x", server_name="", tool_name="x"))
    assert store.load().whitelist == []
