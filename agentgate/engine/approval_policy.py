"""Approval mode and whitelist resolution.

Settings are read through a store every loop iteration, so a mode or
whitelist change made while a run is active applies from the next model
turn on.
"""
from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field

from .models import (
    ApprovalMode,
    ToolApprovalSettings,
    ToolCallRequest,
    WhitelistEntry,
)

logger = logging.getLogger(__name__)


class ToolApprovalSettingsStore(abc.ABC):
    """Where the approval mode and whitelist live between runs."""

    @abc.abstractmethod
    def load(self) -> ToolApprovalSettings:
        """Return the current settings."""

    @abc.abstractmethod
    def add_whitelist_entry(self, entry: WhitelistEntry) -> None:
        """Add or replace the entry with the same id."""

    @abc.abstractmethod
    def remove_whitelist_entry(self, entry_id: str) -> bool:
        """Remove an entry. Returns False if it was not present."""

    @abc.abstractmethod
    def set_mode(self, mode: ApprovalMode) -> None:
        """Persist a new approval mode."""


class InMemorySettingsStore(ToolApprovalSettingsStore):
    """Non-persistent store, for embedding and tests."""

    def __init__(self, settings: ToolApprovalSettings | None = None) -> None:
        self._settings = settings or ToolApprovalSettings()

    def load(self) -> ToolApprovalSettings:
        return ToolApprovalSettings(
            mode=self._settings.mode,
            whitelist=list(self._settings.whitelist),
        )

    def add_whitelist_entry(self, entry: WhitelistEntry) -> None:
        self._settings.whitelist = [
            e for e in self._settings.whitelist if e.id != entry.id
        ] + [entry]

    def remove_whitelist_entry(self, entry_id: str) -> bool:
        before = len(self._settings.whitelist)
        self._settings.whitelist = [
            e for e in self._settings.whitelist if e.id != entry_id
        ]
        return len(self._settings.whitelist) != before

    def set_mode(self, mode: ApprovalMode) -> None:
        self._settings.mode = mode


@dataclass(frozen=True)
class ApprovalSnapshot:
    """Settings as read at the start of one loop iteration."""
    mode: ApprovalMode
    whitelisted: frozenset[str] = field(default_factory=frozenset)

    def requires_approval(self, tool_id: str) -> bool:
        if self.mode == ApprovalMode.YOLO:
            return False
        return tool_id not in self.whitelisted


class ApprovalPolicy:
    """Read-through view over a ToolApprovalSettingsStore."""

    def __init__(self, store: ToolApprovalSettingsStore) -> None:
        self._store = store

    @property
    def store(self) -> ToolApprovalSettingsStore:
        return self._store

    def snapshot(self) -> ApprovalSnapshot:
        settings = self._store.load()
        snap = ApprovalSnapshot(
            mode=settings.mode,
            whitelisted=frozenset(entry.id for entry in settings.whitelist),
        )
        logger.debug(
            "Approval snapshot mode=%s whitelisted=%d",
            snap.mode.value, len(snap.whitelisted),
        )
        return snap

    def whitelist(
        self, tool_call: ToolCallRequest, server_name: str | None = None,
        tool_name: str | None = None,
    ) -> WhitelistEntry:
        """Persist a whitelist entry for the tool behind ``tool_call``."""
        entry = WhitelistEntry(
            id=tool_call.name,
            server_name=server_name or "",
            tool_name=tool_name or tool_call.name,
        )
        self._store.add_whitelist_entry(entry)
        logger.info("Whitelisted tool %s (server=%s)", entry.id, entry.server_name or "-")
        return entry
