"""Abstract base for language-model providers.

The orchestration engine calls generate() once per model turn with the
full conversation history and the tools available for the run.
"""
from __future__ import annotations

import abc
import logging
from collections.abc import Mapping

from ..models import GenerateResult, Message, ToolDefinition

logger = logging.getLogger(__name__)


class LanguageModelProvider(abc.ABC):
    """Abstract provider interface.

    Implementations wrap a specific model API:
    - OpenAICompatibleProvider: OpenAI and DeepSeek chat completions
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short provider name (e.g. 'openai', 'deepseek')."""

    @abc.abstractmethod
    async def generate(
        self,
        messages: list[Message],
        tools: Mapping[str, ToolDefinition],
    ) -> GenerateResult:
        """Run one model turn.

        Returns the messages to append to the history, the finish
        reason and any requested tool calls. Transport failures raise
        ProviderError.
        """

    async def close(self) -> None:
        """Release network resources. Default no-op."""
        return None
