from __future__ import annotations

import json
import time

import pytest
from fastapi import WebSocketDisconnect, status
from fastapi.testclient import TestClient

from ticketwise.api.hosted import HostedSessionManager
from ticketwise.hosted.envelope import MemberIdentity
from ticketwise.hosted.session import OriginAllowList

HOST = "https://na.myconnectwise.net"

AUTH_DATA = {
    "codeBase": "v2024_1",
    "companyid": "contoso",
    "memberContext": "ctx-token",
    "memberEmail": "alex@example.com",
    "memberid": "alex",
    "memberHash": "hash-123",
    "site": "na.myconnectwise.net",
}


def test_hosted_relay_handshake(app):
    with TestClient(app) as test_client:
        with test_client.websocket_connect("/ws/hosted") as ws:
            ws.send_json({"kind": "request_auth"})
            assert ws.receive_json()["code"] == "CHANNEL_NOT_READY"

            ws.send_json({"kind": "load", "embedded": True})
            ready = ws.receive_json()
            assert ready["kind"] == "post"
            assert ready["target_origin"] == "*"
            assert json.loads(ready["message"]) == {"message": "ready"}

            ws.send_json({"kind": "message", "origin": HOST, "data": '{"MessageFrameID": "f-1"}'})
            assert ws.receive_json() == {"kind": "ready", "frame_id": "f-1"}
            auth_request = ws.receive_json()
            assert auth_request["target_origin"] == HOST
            assert json.loads(auth_request["message"]) == {
                "hosted_request": "getMemberAuthentication",
                "frameID": "f-1",
            }
            record_request = ws.receive_json()
            assert json.loads(record_request["message"])["hosted_request"] == "getScreenObject"

            ws.send_json(
                {
                    "kind": "message",
                    "origin": HOST,
                    "data": {"response": "getmemberauthentication", "data": AUTH_DATA},
                }
            )
            authenticated = ws.receive_json()
            assert authenticated["kind"] == "authenticated"
            assert authenticated["member_id"] == "alex"
            identity = app.state.auth_store.unseal_identity(authenticated["session_token"])
            assert isinstance(identity, MemberIdentity)
            assert identity.member_hash == "hash-123"

            ws.send_json(
                {
                    "kind": "message",
                    "origin": HOST,
                    "data": {
                        "response": "getscreenobject",
                        "data": {"hostedAs": "pod", "id": 1, "screen": "ticket"},
                    },
                }
            )
            assert ws.receive_json() == {
                "kind": "record",
                "id": "1",
                "screen": "ticket",
                "hosted_as": "pod",
                "ticket_id": 1,
            }


def test_hosted_relay_ignores_foreign_origins(app):
    with TestClient(app) as test_client:
        with test_client.websocket_connect("/ws/hosted") as ws:
            ws.send_json(
                {"kind": "message", "origin": "https://evil.example.com", "data": {"MessageFrameID": "x"}}
            )
            ws.send_json({"kind": "refresh_screen"})
            assert ws.receive_json()["code"] == "CHANNEL_NOT_READY"


def test_auth_before_frame_is_relayed_and_kept(app):
    with TestClient(app) as test_client:
        with test_client.websocket_connect("/ws/hosted") as ws:
            ws.send_json(
                {
                    "kind": "message",
                    "origin": HOST,
                    "data": {"response": "getmemberauthentication", "data": AUTH_DATA},
                }
            )
            assert ws.receive_json()["kind"] == "authenticated"

            ws.send_json({"kind": "message", "origin": HOST, "data": {"MessageFrameID": "f-1"}})
            assert ws.receive_json() == {"kind": "ready", "frame_id": "f-1"}
            record_request = ws.receive_json()
            assert json.loads(record_request["message"])["hosted_request"] == "getScreenObject"


def test_malformed_origin_does_not_close_relay(app):
    with TestClient(app) as test_client:
        with test_client.websocket_connect("/ws/hosted") as ws:
            ws.send_json({"kind": "message", "origin": "https://[::1", "data": {"MessageFrameID": "x"}})
            ws.send_json({"kind": "refresh_screen"})
            assert ws.receive_json()["code"] == "CHANNEL_NOT_READY"


def test_relay_refuses_foreign_page_origin(app):
    app.state.hosted_manager = HostedSessionManager(
        OriginAllowList(["https://*.myconnectwise.net"]),
        OriginAllowList(["https://pod.example.com"]),
    )
    with TestClient(app) as test_client:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with test_client.websocket_connect(
                "/ws/hosted", headers={"origin": "https://evil.example.com"}
            ):
                pass
        assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION

        with test_client.websocket_connect(
            "/ws/hosted", headers={"origin": "https://pod.example.com"}
        ) as ws:
            ws.send_json({"kind": "refresh_screen"})
            assert ws.receive_json()["code"] == "CHANNEL_NOT_READY"

        with test_client.websocket_connect("/ws/hosted", headers={"origin": "http://testserver"}) as ws:
            ws.send_json({"kind": "refresh_screen"})
            assert ws.receive_json()["code"] == "CHANNEL_NOT_READY"


def test_disconnect_unregisters_session(app):
    manager = app.state.hosted_manager
    with TestClient(app) as test_client:
        with test_client.websocket_connect("/ws/hosted") as ws:
            ws.send_json({"kind": "refresh_screen"})
            ws.receive_json()
            assert manager.active_count == 1
        for _ in range(50):
            if manager.active_count == 0:
                break
            time.sleep(0.01)
        assert manager.active_count == 0
