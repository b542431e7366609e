"""Language-model providers for the orchestration loop."""
from __future__ import annotations

from typing import TYPE_CHECKING

from .base import LanguageModelProvider
from .openai_compat import PROVIDER_DEFAULTS, OpenAICompatibleProvider

if TYPE_CHECKING:
    from ..yaml_config import ProviderConfig


def build_provider(config: ProviderConfig) -> LanguageModelProvider:
    """Construct the provider described by a ProviderConfig."""
    return OpenAICompatibleProvider(
        config.type,
        model=config.model,
        base_url=config.base_url,
        api_key_env=config.api_key_env,
        timeout_seconds=config.timeout_seconds,
        temperature=config.temperature,
    )


__all__ = [
    "LanguageModelProvider",
    "OpenAICompatibleProvider",
    "PROVIDER_DEFAULTS",
    "build_provider",
]
