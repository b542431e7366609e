"""OpenAI-compatible chat-completions provider.

Talks to the OpenAI or DeepSeek REST API over aiohttp. Only the
non-streaming request/response cycle is used: one POST per model turn.
"""
from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import aiohttp

from ..errors import ProviderError
from ..models import (
    FinishReason,
    GenerateResult,
    Message,
    MessageRole,
    ToolCallRequest,
    ToolDefinition,
)
from .base import LanguageModelProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderDefaults:
    base_url: str
    model: str
    api_key_env: str


PROVIDER_DEFAULTS: dict[str, ProviderDefaults] = {
    "openai": ProviderDefaults(
        base_url="https://api.openai.com/v1",
        model="gpt-5-mini",
        api_key_env="OPENAI_API_KEY",
    ),
    "deepseek": ProviderDefaults(
        base_url="https://api.deepseek.com/v1",
        model="deepseek-chat",
        api_key_env="DEEPSEEK_API_KEY",
    ),
}


def message_to_wire(message: Message) -> dict[str, Any]:
    """Convert a history entry to a chat-completions message."""
    wire: dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.role == MessageRole.ASSISTANT and message.tool_calls:
        wire["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {
                    "name": call.name,
                    "arguments": json.dumps(call.arguments),
                },
            }
            for call in message.tool_calls
        ]
    if message.role == MessageRole.TOOL:
        wire["tool_call_id"] = message.tool_call_id
        wire["content"] = message.content or ""
    return wire


def order_tool_responses(wire: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Move user messages out of a tool-response block.

    Chat-completions requires every ``tool`` message to follow the assistant
    tool_calls message or another ``tool`` message. User messages that fall
    between the responses of one turn are sent right after the block.
    """
    ordered: list[dict[str, Any]] = []
    deferred: list[dict[str, Any]] = []
    in_block = False
    for message in wire:
        role = message["role"]
        if in_block:
            if role == MessageRole.TOOL.value:
                ordered.append(message)
                continue
            if role == MessageRole.USER.value:
                deferred.append(message)
                continue
            ordered.extend(deferred)
            deferred = []
            in_block = False
        ordered.append(message)
        if role == MessageRole.ASSISTANT.value and message.get("tool_calls"):
            in_block = True
    ordered.extend(deferred)
    return ordered


def tool_to_wire(definition: ToolDefinition) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": definition.name,
            "description": definition.description,
            "parameters": definition.input_schema,
        },
    }


def _parse_arguments(raw: Any, tool_name: str) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Unparseable arguments for tool %s: %.200s", tool_name, raw)
        return {}
    if not isinstance(parsed, dict):
        logger.warning("Non-object arguments for tool %s: %.200s", tool_name, raw)
        return {}
    return parsed


def parse_completion(provider_name: str, data: dict[str, Any]) -> GenerateResult:
    """Turn a chat-completions response body into a GenerateResult."""
    choices = data.get("choices") or []
    if not choices:
        raise ProviderError(provider_name, "response contained no choices")
    choice = choices[0]
    message = choice.get("message") or {}

    tool_calls = []
    for raw_call in message.get("tool_calls") or []:
        function = raw_call.get("function") or {}
        name = function.get("name", "")
        tool_calls.append(ToolCallRequest(
            id=raw_call.get("id", ""),
            name=name,
            arguments=_parse_arguments(function.get("arguments"), name),
        ))

    text = message.get("content")
    return GenerateResult(
        messages=[Message.assistant(text, tool_calls)],
        finish_reason=FinishReason.parse(choice.get("finish_reason")),
        tool_calls=tool_calls,
        text=text,
        reasoning=message.get("reasoning_content"),
    )


class OpenAICompatibleProvider(LanguageModelProvider):
    """Chat-completions client for OpenAI and DeepSeek."""

    def __init__(
        self,
        provider_type: str = "openai",
        *,
        model: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        api_key_env: str | None = None,
        timeout_seconds: float = 120.0,
        temperature: float | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        defaults = PROVIDER_DEFAULTS.get(provider_type)
        if defaults is None:
            raise ValueError(
                f"Unknown provider type '{provider_type}'. "
                f"Available: {', '.join(PROVIDER_DEFAULTS)}"
            )
        self._type = provider_type
        self._model = model or defaults.model
        self._base_url = (base_url or defaults.base_url).rstrip("/")
        self._api_key = api_key or os.getenv(api_key_env or defaults.api_key_env)
        self._api_key_env = api_key_env or defaults.api_key_env
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._temperature = temperature
        self._session = session
        self._owns_session = session is None

    @property
    def name(self) -> str:
        return self._type

    @property
    def model(self) -> str:
        return self._model

    def build_payload(
        self, messages: list[Message], tools: Mapping[str, ToolDefinition],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": order_tool_responses([message_to_wire(m) for m in messages]),
        }
        if tools:
            payload["tools"] = [tool_to_wire(t) for t in tools.values()]
        if self._temperature is not None:
            payload["temperature"] = self._temperature
        return payload

    async def generate(
        self,
        messages: list[Message],
        tools: Mapping[str, ToolDefinition],
    ) -> GenerateResult:
        if not self._api_key:
            raise ProviderError(self.name, f"no API key (set {self._api_key_env})")

        url = f"{self._base_url}/chat/completions"
        payload = self.build_payload(messages, tools)
        headers = {"Authorization": f"Bearer {self._api_key}"}
        logger.debug(
            "Provider %s request model=%s messages=%d tools=%d",
            self.name, self._model, len(messages), len(tools),
        )

        session = await self._get_session()
        try:
            async with session.post(url, json=payload, headers=headers) as resp:
                body = await resp.text()
                if resp.status >= 400:
                    raise ProviderError(self.name, body[:500], status=resp.status)
        except aiohttp.ClientError as exc:
            raise ProviderError(self.name, str(exc)) from exc

        try:
            data = json.loads(body)
        except ValueError as exc:
            raise ProviderError(self.name, f"invalid JSON response: {exc}") from exc

        result = parse_completion(self.name, data)
        logger.info(
            "Provider %s turn finished reason=%s tool_calls=%d",
            self.name, result.finish_reason.value, len(result.tool_calls),
        )
        return result

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session
