from __future__ import annotations

import base64

import httpx
import pytest

from ticketwise.gateway.client import ConnectWiseGateway, GatewayCredentials, GatewayError

CREDENTIALS = GatewayCredentials(
    company_url="cw.example.com",
    code_base="v4_6_release",
    company_id="contoso",
    public_key="pub",
    private_key="priv",
    client_id="client-123",
)
BASE_PATH = "/v4_6_release/apis/3.0"


@pytest.mark.anyio
async def test_get_ticket_sends_basic_auth_and_client_id():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "id": 7,
                "summary": "Printer offline",
                "status": {"id": 1, "name": "New"},
                "_info": {"lastUpdated": "2024-05-02T10:00:00Z"},
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = ConnectWiseGateway(CREDENTIALS, http_client=client)
        ticket = await gateway.get_ticket(7)

    assert ticket.summary == "Printer offline"
    assert ticket.status_name == "New"
    assert ticket.info.last_updated == "2024-05-02T10:00:00Z"
    request = seen[0]
    assert request.url.host == "cw.example.com"
    assert request.url.path == f"{BASE_PATH}/service/tickets/7"
    expected = base64.b64encode(b"contoso+pub:priv").decode("ascii")
    assert request.headers["Authorization"] == f"Basic {expected}"
    assert request.headers["clientId"] == "client-123"
    assert "x-cw-usertype" not in request.headers


@pytest.mark.anyio
async def test_member_gateway_adds_impersonation_headers():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = ConnectWiseGateway(CREDENTIALS, http_client=client).for_member("alex")
        await gateway.get_configurations(7)

    assert seen[0].headers["x-cw-usertype"] == "member"
    assert seen[0].headers["x-cw-memberhash"] == "alex"


@pytest.mark.anyio
async def test_notes_are_sorted_oldest_first_with_undated_first():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/service/tickets/7/allNotes")
        assert request.url.params["pageSize"] == "100"
        return httpx.Response(
            200,
            json=[
                {"id": 3, "text": "third", "dateCreated": "2024-05-03T09:00:00Z"},
                {"id": 1, "text": "undated"},
                {"id": 2, "text": "second", "dateCreated": "2024-05-02T09:00:00+01:00"},
            ],
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notes = await ConnectWiseGateway(CREDENTIALS, http_client=client).get_notes(7)

    assert [note.id for note in notes] == [1, 2, 3]


@pytest.mark.anyio
async def test_search_tickets_passes_conditions_and_fields():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": 9, "summary": "VPN"}])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = ConnectWiseGateway(CREDENTIALS, http_client=client)
        tickets = await gateway.search_tickets(
            'summary like "%vpn%"', order_by="dateEntered desc", page_size=20, fields=("id", "summary")
        )

    assert [ticket.id for ticket in tickets] == [9]
    params = seen[0].url.params
    assert params["conditions"] == 'summary like "%vpn%"'
    assert params["orderBy"] == "dateEntered desc"
    assert params["pageSize"] == "20"
    assert params["fields"] == "id,summary"


@pytest.mark.anyio
async def test_configuration_tickets_match_name_and_serial():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/company/configurations/5"):
            return httpx.Response(200, json={"id": 5, "name": "LAPTOP-01", "serialNumber": "SN1234"})
        return httpx.Response(200, json=[{"id": 30, "summary": "LAPTOP-01 slow"}])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = ConnectWiseGateway(CREDENTIALS, http_client=client)
        tickets = await gateway.get_configuration_tickets(5)

    assert [ticket.id for ticket in tickets] == [30]
    conditions = seen[1].url.params["conditions"]
    assert conditions.startswith("dateEntered>=[")
    assert 'summary like "%LAPTOP-01%" or summary like "%SN1234%"' in conditions


@pytest.mark.anyio
async def test_configuration_without_usable_identifiers_skips_search():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"id": 5, "name": "PC", "serialNumber": "123"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tickets = await ConnectWiseGateway(CREDENTIALS, http_client=client).get_configuration_tickets(5)

    assert tickets == []
    assert len(calls) == 1


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("status", "code", "retryable"),
    [
        (404, "GATEWAY_NOT_FOUND", False),
        (401, "GATEWAY_BAD_STATUS", False),
        (503, "GATEWAY_UPSTREAM", True),
        (429, "GATEWAY_UPSTREAM", True),
    ],
)
async def test_status_errors_are_classified(status, code, retryable):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text="nope")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = ConnectWiseGateway(CREDENTIALS, http_client=client)
        with pytest.raises(GatewayError) as exc_info:
            await gateway.get_ticket(7)

    assert exc_info.value.code == code
    assert exc_info.value.retryable is retryable
    assert exc_info.value.message == f"Gateway returned {status}: nope"


@pytest.mark.anyio
async def test_timeouts_are_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = ConnectWiseGateway(CREDENTIALS, http_client=client)
        with pytest.raises(GatewayError) as exc_info:
            await gateway.get_notes(7)

    assert exc_info.value.code == "GATEWAY_TIMEOUT"
    assert exc_info.value.retryable


@pytest.mark.anyio
async def test_unexpected_shapes_are_parse_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"summary": "missing id"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = ConnectWiseGateway(CREDENTIALS, http_client=client)
        with pytest.raises(GatewayError) as exc_info:
            await gateway.get_ticket(7)

    assert exc_info.value.code == "GATEWAY_PARSE_ERROR"


def test_missing_company_url_is_a_configuration_error():
    credentials = GatewayCredentials("", "v4_6_release", "c", "p", "k", "id")
    with pytest.raises(GatewayError) as exc_info:
        credentials.base_url
    assert exc_info.value.code == "GATEWAY_NOT_CONFIGURED"
