from __future__ import annotations

import pytest

from conftest import build_chat_service, make_note
from ticketwise.gateway.client import GatewayError
from ticketwise.services.rate_limiter import RATE_LIMIT_MESSAGE, RateLimiter


@pytest.mark.anyio
async def test_chat_returns_provider_answer(client):
    response = await client.post("/api/chat", json={"ticket_id": 1, "message": "What next?"})

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Stub answer."
    assert data["slash_command"] is None
    assert data["short_circuited"] is False


@pytest.mark.anyio
async def test_chat_rejects_blank_message(client):
    response = await client.post("/api/chat", json={"ticket_id": 1, "message": "   "})
    assert response.status_code == 400


@pytest.mark.anyio
async def test_chat_is_rate_limited_per_member(app, client):
    app.state.chat_service = build_chat_service(
        app.state.gateway, app.state.provider_service, RateLimiter(max_requests=2)
    )
    for _ in range(2):
        response = await client.post("/api/chat", json={"ticket_id": 1, "message": "hi"})
        assert response.json()["message"] == "Stub answer."

    response = await client.post("/api/chat", json={"ticket_id": 1, "message": "hi"})

    assert response.status_code == 200
    assert response.json() == {
        "message": RATE_LIMIT_MESSAGE,
        "slash_command": None,
        "short_circuited": True,
    }


@pytest.mark.anyio
async def test_chat_stream_returns_text(client):
    response = await client.post("/api/chat/stream", json={"ticket_id": 1, "message": "hi"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "Stub answer. "


@pytest.mark.anyio
async def test_list_commands(client):
    response = await client.get("/api/chat/commands")

    assert response.status_code == 200
    commands = response.json()["commands"]
    assert commands[0]["command"] == "/summary"
    assert {item["command"] for item in commands} >= {"/similar", "/config", "/5whys"}


@pytest.mark.anyio
async def test_ticket_context(app, client):
    app.state.gateway.notes[1] = [make_note(1, "Rebooted printer.", "2024-05-01T09:00:00Z")]

    response = await client.get("/api/ticket/1/context")

    assert response.status_code == 200
    data = response.json()
    assert data["ticket_id"] == 1
    assert data["summary"] == "Printer offline"
    assert data["status"] == "New"
    assert data["note_count"] == 1
    assert "## Ticket Notes (1)" in data["context"]


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("error", "expected_status"),
    [
        (GatewayError("GATEWAY_NOT_FOUND", "Gateway returned 404: missing", status_code=404), 404),
        (GatewayError("GATEWAY_TIMEOUT", "Ticket gateway request timed out.", retryable=True), 504),
        (GatewayError("GATEWAY_BAD_STATUS", "Gateway returned 401: denied", status_code=401), 502),
    ],
)
async def test_gateway_failures_fail_the_turn(app, client, error, expected_status):
    async def failing_get_ticket(ticket_id: int):
        raise error

    app.state.gateway.get_ticket = failing_get_ticket

    response = await client.post("/api/chat", json={"ticket_id": 1, "message": "hi"})

    assert response.status_code == expected_status
    assert response.json()["detail"] == error.message


@pytest.mark.anyio
async def test_responses_carry_framing_headers(client):
    response = await client.get("/api/chat/commands")

    assert response.headers["content-security-policy"] == (
        "frame-ancestors https://*.myconnectwise.net"
    )
    assert response.headers["x-content-type-options"] == "nosniff"
    assert "x-frame-options" not in response.headers
