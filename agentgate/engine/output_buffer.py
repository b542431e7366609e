"""Keyed store of raw tool outputs for chaining between tool calls.

A tool result is stored verbatim and the model only sees its id. A later
tool call can pass ``toolOutputRef: <id>`` and the engine swaps that field
for ``template: <stored content>`` before executing the tool, so the data
never round-trips through the model.
"""
from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from .models import BufferedToolOutput

logger = logging.getLogger(__name__)

TOOL_OUTPUT_REF_FIELD = "toolOutputRef"
TEMPLATE_FIELD = "template"


def serialize_output(content: Any) -> str:
    """Strings pass through; anything else is JSON-encoded."""
    if isinstance(content, str):
        return content
    try:
        return json.dumps(content)
    except (TypeError, ValueError):
        return str(content)


class ToolOutputBuffer:
    """Raw tool outputs for the lifetime of one run."""

    def __init__(self) -> None:
        self._outputs: dict[str, BufferedToolOutput] = {}

    def __len__(self) -> int:
        return len(self._outputs)

    def store(self, tool_name: str, content: Any) -> str:
        output_id = f"tool_output_{uuid.uuid4().hex}"
        self._outputs[output_id] = BufferedToolOutput(
            id=output_id,
            tool_name=tool_name,
            content=serialize_output(content),
        )
        logger.debug(
            "Buffered output of %s as %s (%d chars)",
            tool_name, output_id, len(self._outputs[output_id].content),
        )
        return output_id

    def get(self, output_id: str) -> str | None:
        output = self._outputs.get(output_id)
        return output.content if output is not None else None

    def list_all(self) -> list[dict[str, Any]]:
        """Summaries of every buffered output, without content."""
        return [
            {
                "id": output.id,
                "tool_name": output.tool_name,
                "size": len(output.content),
                "timestamp": output.timestamp,
            }
            for output in self._outputs.values()
        ]

    def clear(self) -> None:
        if self._outputs:
            logger.debug("Clearing %d buffered tool outputs", len(self._outputs))
        self._outputs.clear()

    def resolve_references(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Return ``arguments`` with a resolvable output reference inlined.

        The input dict is never modified. An unknown id leaves the
        arguments as they are.
        """
        ref = arguments.get(TOOL_OUTPUT_REF_FIELD)
        if not isinstance(ref, str):
            return arguments
        content = self.get(ref)
        if content is None:
            available = ", ".join(
                f"{o['id']} ({o['tool_name']}, {o['size']} chars)" for o in self.list_all()
            )
            logger.warning(
                "Unknown tool output reference %s, passing arguments through. Available: %s",
                ref, available or "none",
            )
            return arguments
        resolved = {k: v for k, v in arguments.items() if k != TOOL_OUTPUT_REF_FIELD}
        resolved[TEMPLATE_FIELD] = content
        logger.info("Resolved tool output reference %s (%d chars)", ref, len(content))
        return resolved
