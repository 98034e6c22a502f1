from __future__ import annotations

from fastapi import HTTPException, status

from ticketwise.gateway.client import GatewayError
from ticketwise.providers.base import ProviderError


def to_http_error(exc: GatewayError | ProviderError) -> HTTPException:
    """Translate a gateway or provider failure into an HTTP error."""

    if isinstance(exc, GatewayError):
        return HTTPException(status_code=_gateway_status(exc.code), detail=exc.message)
    return HTTPException(status_code=_provider_status(exc.code), detail=exc.message)


def _gateway_status(code: str) -> int:
    if code == "GATEWAY_TIMEOUT":
        return status.HTTP_504_GATEWAY_TIMEOUT
    if code == "GATEWAY_NOT_FOUND":
        return status.HTTP_404_NOT_FOUND
    if code == "GATEWAY_NOT_CONFIGURED":
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_502_BAD_GATEWAY


def _provider_status(code: str) -> int:
    if code in {"PROVIDER_NOT_READY", "API_KEY_REQUIRED", "PROVIDER_BASE_URL_MISSING"}:
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if code in {"APP_SECRET_MISSING"}:
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if code in {"PROVIDER_TIMEOUT"}:
        return status.HTTP_504_GATEWAY_TIMEOUT
    return status.HTTP_502_BAD_GATEWAY
