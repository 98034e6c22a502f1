from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Protocol

import httpx


@dataclass
class ProviderRuntimeConfig:
    """Runtime configuration needed by an LLM adapter."""

    provider: str
    model_name: str
    base_url: str | None = None
    api_key: str | None = None
    temperature: float = 0.3
    max_tokens: int = 2000


@dataclass
class LLMResult:
    """Result returned from an LLM generation call."""

    content: str
    model_provider: str
    model_name: str
    token_in: int | None = None
    token_out: int | None = None


class LLMAdapter(Protocol):
    """Adapter interface for LLM providers."""

    async def generate(self, cfg: ProviderRuntimeConfig, messages: list[dict]) -> LLMResult:
        """Generate a single completion."""

    def stream(self, cfg: ProviderRuntimeConfig, messages: list[dict]) -> AsyncIterator[str]:
        """Yield completion text incrementally."""


class ProviderError(RuntimeError):
    """Raised when a provider operation fails."""

    def __init__(
        self,
        code: str,
        message: str,
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable
        self.status_code = status_code


def build_status_error(status: int, body: str) -> ProviderError:
    """Build a normalized provider error from an HTTP status and body."""

    message = _extract_message(body)
    formatted = f"Provider returned {status}: {message}"
    if status in {408, 429}:
        code = "PROVIDER_TIMEOUT" if status == 408 else "PROVIDER_RATE_LIMIT"
        return ProviderError(code, formatted, retryable=True, status_code=status)
    if status >= 500:
        return ProviderError(
            "PROVIDER_UPSTREAM",
            formatted,
            retryable=True,
            status_code=status,
        )
    return ProviderError("PROVIDER_BAD_STATUS", formatted, status_code=status)


def require_api_key(api_key: Optional[str], provider_name: str) -> str:
    """Return an API key or raise a normalized configuration error."""

    if api_key:
        return api_key
    raise ProviderError("API_KEY_REQUIRED", f"API key is required for {provider_name}.")


def _extract_message(body: str) -> str:
    """Extract a concise error message from provider JSON/text payloads."""

    fallback = (body or "Unknown error from provider.").strip()
    try:
        payload: Any = json.loads(body)
    except ValueError:
        return fallback

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            detail = error.get("message") or error.get("code")
            if isinstance(detail, str) and detail.strip():
                return detail.strip()
        if isinstance(error, str) and error.strip():
            return error.strip()
        message = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return fallback


class HTTPProviderAdapter:
    """Shared HTTP behavior for provider adapters."""

    def __init__(
        self, timeout_sec: float = 90, http_client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self._timeout = timeout_sec
        self._client = http_client

    async def _request_json(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        try:
            if self._client:
                response = await self._client.request(
                    method, url, headers=headers, json=json, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, headers=headers, json=json)
        except httpx.TimeoutException as exc:
            raise _timeout_error() from exc
        except httpx.RequestError as exc:
            raise _connection_error() from exc
        if response.status_code >= 400:
            raise build_status_error(response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError("PROVIDER_PARSE_ERROR", "Invalid JSON from provider.") from exc
        if not isinstance(payload, dict):
            raise ProviderError("PROVIDER_PARSE_ERROR", "Provider returned invalid JSON payload.")
        return payload

    async def _stream_events(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """POST and yield each JSON object from a server-sent event stream."""

        try:
            if self._client:
                async for event in self._iter_sse(self._client, url, headers, json):
                    yield event
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    async for event in self._iter_sse(client, url, headers, json):
                        yield event
        except httpx.TimeoutException as exc:
            raise _timeout_error() from exc
        except httpx.RequestError as exc:
            raise _connection_error() from exc

    async def _iter_sse(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Optional[dict[str, str]],
        json: Optional[dict[str, Any]],
    ) -> AsyncIterator[dict[str, Any]]:
        async with client.stream(
            "POST", url, headers=headers, json=json, timeout=self._timeout
        ) as response:
            if response.status_code >= 400:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise build_status_error(response.status_code, body)
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:") :].strip()
                if data == "[DONE]":
                    break
                try:
                    event = _json_loads(data)
                except ValueError as exc:
                    raise ProviderError(
                        "PROVIDER_PARSE_ERROR", "Invalid stream chunk from provider."
                    ) from exc
                if isinstance(event, dict):
                    yield event


def _json_loads(data: str) -> Any:
    return json.loads(data)


def _timeout_error() -> ProviderError:
    return ProviderError("PROVIDER_TIMEOUT", "Provider request timed out.", retryable=True)


def _connection_error() -> ProviderError:
    return ProviderError(
        "PROVIDER_CONNECTION_ERROR",
        "Provider connection failed.",
        retryable=True,
    )
