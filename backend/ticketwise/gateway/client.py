from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional, Sequence, TypeVar

import httpx
from pydantic import ValidationError

from ticketwise.core.config import Settings
from ticketwise.gateway.models import (
    ConfigurationRecord,
    GatewayRecord,
    NoteRecord,
    TicketRecord,
    sort_notes,
)

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=GatewayRecord)

SEARCH_FIELDS = (
    "id",
    "summary",
    "status",
    "company",
    "dateEntered",
    "type",
    "initialDescription",
    "initialResolution",
)


class GatewayError(RuntimeError):
    """Raised when a ticket gateway call fails."""

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


@dataclass(frozen=True)
class GatewayCredentials:
    """API-member credentials for the ConnectWise REST API."""

    company_url: str
    code_base: str
    company_id: str
    public_key: str
    private_key: str
    client_id: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayCredentials":
        return cls(
            company_url=settings.cw_company_url,
            code_base=settings.cw_code_base,
            company_id=settings.cw_company_id,
            public_key=settings.cw_public_key,
            private_key=settings.cw_private_key,
            client_id=settings.cw_client_id,
        )

    @property
    def base_url(self) -> str:
        if not self.company_url:
            raise GatewayError("GATEWAY_NOT_CONFIGURED", "CW_COMPANY_URL must be set.")
        host = self.company_url.strip().rstrip("/")
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        return f"{host}/{self.code_base.strip('/')}/apis/3.0"


class ConnectWiseGateway:
    """Read-only client for tickets, notes and configurations."""

    def __init__(
        self,
        credentials: GatewayCredentials,
        timeout_sec: float = 30,
        http_client: Optional[httpx.AsyncClient] = None,
        member_id: Optional[str] = None,
    ) -> None:
        self._credentials = credentials
        self._timeout = timeout_sec
        self._client = http_client
        self._member_id = member_id

    def for_member(self, member_id: Optional[str]) -> "ConnectWiseGateway":
        """Return a gateway that impersonates the given member."""

        return ConnectWiseGateway(self._credentials, self._timeout, self._client, member_id)

    async def get_ticket(self, ticket_id: int) -> TicketRecord:
        data = await self._get_json(f"/service/tickets/{ticket_id}")
        return _validate(TicketRecord, self._expect_object(data))

    async def get_notes(self, ticket_id: int) -> list[NoteRecord]:
        """Return every note type for a ticket, oldest first.

        allNotes ignores orderBy, so ordering is always applied here.
        """

        data = await self._get_json(
            f"/service/tickets/{ticket_id}/allNotes", params={"pageSize": 100}
        )
        notes = [_validate(NoteRecord, item) for item in self._expect_list(data)]
        return sort_notes(notes)

    async def get_configurations(self, ticket_id: int) -> list[ConfigurationRecord]:
        data = await self._get_json(f"/service/tickets/{ticket_id}/configurations")
        return [_validate(ConfigurationRecord, item) for item in self._expect_list(data)]

    async def get_configuration(self, config_id: int) -> ConfigurationRecord:
        data = await self._get_json(f"/company/configurations/{config_id}")
        return _validate(ConfigurationRecord, self._expect_object(data))

    async def search_tickets(
        self,
        conditions: str,
        order_by: Optional[str] = None,
        page_size: Optional[int] = None,
        fields: Sequence[str] = (),
    ) -> list[TicketRecord]:
        params: dict[str, Any] = {"conditions": conditions}
        if order_by:
            params["orderBy"] = order_by
        if page_size:
            params["pageSize"] = page_size
        if fields:
            params["fields"] = ",".join(fields)
        data = await self._get_json("/service/tickets", params=params)
        return [_validate(TicketRecord, item) for item in self._expect_list(data)]

    async def get_configuration_tickets(
        self, config_id: int, days_back: int = 180, page_size: int = 30
    ) -> list[TicketRecord]:
        """Find recent tickets mentioning a configuration's name or serial number.

        The API cannot filter tickets by configuration, so the configuration's
        identifiers are matched against ticket summaries instead.
        """

        config = await self.get_configuration(config_id)
        terms: list[str] = []
        if config.name and len(config.name) > 2:
            terms.append(config.name)
        if config.serial_number and len(config.serial_number) > 3:
            terms.append(config.serial_number)
        if not terms:
            return []

        since = (date.today() - timedelta(days=days_back)).isoformat()
        keyword_clause = " or ".join(f'summary like "%{_quote(term)}%"' for term in terms)
        return await self.search_tickets(
            f"dateEntered>=[{since}] and ({keyword_clause})",
            order_by="dateEntered desc",
            page_size=page_size,
            fields=SEARCH_FIELDS,
        )

    def _headers(self) -> dict[str, str]:
        creds = self._credentials
        token = base64.b64encode(
            f"{creds.company_id}+{creds.public_key}:{creds.private_key}".encode("utf-8")
        ).decode("ascii")
        headers = {
            "Authorization": f"Basic {token}",
            "clientId": creds.client_id,
            "Accept": "application/json",
        }
        if self._member_id:
            headers["x-cw-usertype"] = "member"
            headers["x-cw-memberhash"] = self._member_id
        return headers

    async def _get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        url = self._credentials.base_url + path
        try:
            if self._client:
                response = await self._client.get(
                    url, params=params, headers=self._headers(), timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=params, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise GatewayError(
                "GATEWAY_TIMEOUT", "Ticket gateway request timed out.", retryable=True
            ) from exc
        except httpx.RequestError as exc:
            raise GatewayError(
                "GATEWAY_CONNECTION_ERROR", "Ticket gateway connection failed.", retryable=True
            ) from exc
        if response.status_code >= 400:
            raise self._status_error(response)
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError("GATEWAY_PARSE_ERROR", "Invalid JSON from ticket gateway.") from exc

    @staticmethod
    def _status_error(response: httpx.Response) -> GatewayError:
        status = response.status_code
        detail = (response.text or "").strip() or "Unknown error from ticket gateway."
        message = f"Gateway returned {status}: {detail}"
        logger.warning("Ticket gateway error status=%s path=%s", status, response.request.url.path)
        if status in {408, 429} or status >= 500:
            return GatewayError("GATEWAY_UPSTREAM", message, retryable=True, status_code=status)
        if status == 404:
            return GatewayError("GATEWAY_NOT_FOUND", message, status_code=status)
        return GatewayError("GATEWAY_BAD_STATUS", message, status_code=status)

    @staticmethod
    def _expect_list(data: Any) -> list[dict]:
        if not isinstance(data, list):
            raise GatewayError("GATEWAY_PARSE_ERROR", "Ticket gateway returned a non-list payload.")
        return [item for item in data if isinstance(item, dict)]

    @staticmethod
    def _expect_object(data: Any) -> dict:
        if not isinstance(data, dict):
            raise GatewayError("GATEWAY_PARSE_ERROR", "Ticket gateway returned a non-object payload.")
        return data


def _quote(term: str) -> str:
    return term.replace('"', "").replace("%", "")


def _validate(model: type[RecordT], payload: dict) -> RecordT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise GatewayError(
            "GATEWAY_PARSE_ERROR", f"Unexpected {model.__name__} shape from ticket gateway."
        ) from exc
