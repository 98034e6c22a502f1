from __future__ import annotations

from typing import AsyncIterator, Optional

from ticketwise.core.config import Settings, get_settings
from ticketwise.providers.base import LLMAdapter, LLMResult, ProviderError, ProviderRuntimeConfig
from ticketwise.providers.openai_adapter import OpenAIAdapter


class ProviderService:
    """Hold the configured completion provider and its runtime settings."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        adapter: Optional[LLMAdapter] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._adapter = adapter or OpenAIAdapter(timeout_sec=self._settings.provider_timeout_sec)

    def set_adapter(self, adapter: LLMAdapter) -> None:
        """Override the adapter (useful for tests)."""

        self._adapter = adapter

    def runtime_config(self) -> ProviderRuntimeConfig:
        settings = self._settings
        if not settings.openai_model.strip():
            raise ProviderError("PROVIDER_NOT_READY", "OPENAI_MODEL must be configured.")
        return ProviderRuntimeConfig(
            provider="openai",
            model_name=settings.openai_model.strip(),
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key or None,
            temperature=settings.ai_temperature,
            max_tokens=settings.ai_max_tokens,
        )

    async def complete(self, messages: list[dict]) -> LLMResult:
        return await self._adapter.generate(self.runtime_config(), messages)

    def stream(self, messages: list[dict]) -> AsyncIterator[str]:
        return self._adapter.stream(self.runtime_config(), messages)
