"""Persistent storage for tool approval settings.

One JSON file (default ~/.agentgate/tool_approval.json):

    {
      "mode": "ask",
      "whitelist": [
        {"id": "tasks__create_task", "serverName": "tasks",
         "toolName": "create_task", "createdAt": 1718000000.0}
      ]
    }

The file is re-read on every load() so edits from another process
(the server, a second CLI) are picked up on the next loop iteration.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path

from agentgate.engine.approval_policy import ToolApprovalSettingsStore
from agentgate.engine.models import (
    ApprovalMode,
    ToolApprovalSettings,
    WhitelistEntry,
)

logger = logging.getLogger(__name__)


class JsonSettingsStore(ToolApprovalSettingsStore):
    """Load and save approval mode and whitelist in a JSON file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ToolApprovalSettings:
        """Read the settings, falling back to defaults on a missing or bad file."""
        if not self._path.exists():
            return ToolApprovalSettings()
        try:
            data = json.loads(self._path.read_text())
        except (json.JSONDecodeError, OSError):
            logger.warning("Failed to load %s, using default approval settings", self._path)
            return ToolApprovalSettings()
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a JSON object", self._path)
            return ToolApprovalSettings()

        try:
            mode = ApprovalMode.parse(data.get("mode", ApprovalMode.ASK.value))
        except ValueError:
            logger.warning("Unknown approval mode %r in %s, using ask", data.get("mode"), self._path)
            mode = ApprovalMode.ASK

        whitelist: list[WhitelistEntry] = []
        raw_whitelist = data.get("whitelist") or []
        if not isinstance(raw_whitelist, list):
            logger.warning("Ignoring whitelist in %s: expected a list, got %r", self._path, raw_whitelist)
            raw_whitelist = []
        for raw in raw_whitelist:
            try:
                whitelist.append(WhitelistEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed whitelist entry in %s: %r", self._path, raw)
        return ToolApprovalSettings(mode=mode, whitelist=whitelist)

    def add_whitelist_entry(self, entry: WhitelistEntry) -> None:
        settings = self.load()
        settings.whitelist = [e for e in settings.whitelist if e.id != entry.id]
        settings.whitelist.append(entry)
        self._save(settings)

    def remove_whitelist_entry(self, entry_id: str) -> bool:
        settings = self.load()
        remaining = [e for e in settings.whitelist if e.id != entry_id]
        if len(remaining) == len(settings.whitelist):
            return False
        settings.whitelist = remaining
        self._save(settings)
        return True

    def set_mode(self, mode: ApprovalMode) -> None:
        settings = self.load()
        settings.mode = mode
        self._save(settings)
        logger.info("Approval mode set to %s", mode.value)

    def _save(self, settings: ToolApprovalSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(settings.to_dict(), indent=2) + "\n")
        tmp.replace(self._path)
