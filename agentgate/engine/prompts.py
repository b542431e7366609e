"""System prompt text used when a run does not supply its own."""
from __future__ import annotations

from .models import RunContext

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI that can call tools. Use the provided tools to "
    "satisfy the user request. When you have the final answer, respond "
    "normally so the session can end."
)

TOOL_OUTPUT_PROMPT = (
    "Every tool result includes a toolOutputRef. To pass a previous tool's "
    "raw output to another tool unchanged, set the argument toolOutputRef "
    "to that id instead of copying the content."
)


def build_system_prompt(base: str, context: RunContext | None = None) -> str:
    """Compose the system prompt for one run."""
    prompt = f"{base}\n\n{TOOL_OUTPUT_PROMPT}"
    if context is not None and context.video_url:
        prompt += (
            f"\n\nThis is the uploaded video URL: {context.video_url}.\n"
            "Please include this URL in the task content that you create."
        )
    return prompt
