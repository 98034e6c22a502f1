from __future__ import annotations

from typing import Any, AsyncIterator, Optional

import httpx

from ticketwise.providers.base import (
    HTTPProviderAdapter,
    LLMResult,
    ProviderError,
    ProviderRuntimeConfig,
    require_api_key,
)


class OpenAIAdapter(HTTPProviderAdapter):
    """Adapter for OpenAI-compatible chat completion APIs."""

    def __init__(self, timeout_sec: float = 90, http_client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(timeout_sec=timeout_sec, http_client=http_client)

    async def generate(self, cfg: ProviderRuntimeConfig, messages: list[dict]) -> LLMResult:
        url = self._join_url(cfg.base_url, "/v1/chat/completions")
        data = await self._request_json(
            "POST", url, headers=self._auth_headers(cfg.api_key), json=self._payload(cfg, messages)
        )
        choices = data.get("choices", [])
        if not choices:
            raise ProviderError("PROVIDER_PARSE_ERROR", "No choices returned by provider.")
        content = (choices[0].get("message") or {}).get("content") or ""
        return LLMResult(
            content=content,
            model_provider=cfg.provider,
            model_name=cfg.model_name,
            token_in=self._get_usage_int(data, "prompt_tokens"),
            token_out=self._get_usage_int(data, "completion_tokens"),
        )

    async def stream(self, cfg: ProviderRuntimeConfig, messages: list[dict]) -> AsyncIterator[str]:
        url = self._join_url(cfg.base_url, "/v1/chat/completions")
        payload = self._payload(cfg, messages)
        payload["stream"] = True
        async for event in self._stream_events(
            url, headers=self._auth_headers(cfg.api_key), json=payload
        ):
            for choice in event.get("choices", []):
                delta = choice.get("delta") or {}
                text = delta.get("content")
                if text:
                    yield text

    @staticmethod
    def _payload(cfg: ProviderRuntimeConfig, messages: list[dict]) -> dict[str, Any]:
        return {
            "model": cfg.model_name,
            "messages": messages,
            "temperature": cfg.temperature,
            "max_completion_tokens": cfg.max_tokens,
        }

    @staticmethod
    def _auth_headers(api_key: Optional[str]) -> dict[str, str]:
        return {"Authorization": f"Bearer {require_api_key(api_key, 'OpenAI')}"}

    @staticmethod
    def _join_url(base_url: Optional[str], path: str) -> str:
        if not base_url:
            raise ProviderError("PROVIDER_BASE_URL_MISSING", "Base URL is required for OpenAI.")
        base = base_url.rstrip("/")
        if base.endswith("/v1") and path.startswith("/v1/"):
            return base + path[3:]
        return base + path

    @staticmethod
    def _get_usage_int(data: dict[str, Any], key: str) -> Optional[int]:
        usage = data.get("usage") or {}
        value = usage.get(key)
        return int(value) if isinstance(value, int) else None
