from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from typing import Any, Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from ticketwise.hosted.channel import HostChannel
from ticketwise.hosted.envelope import ActiveRecord, MemberIdentity
from ticketwise.hosted.session import ChannelError, HostedSession, OriginAllowList
from ticketwise.providers.base import ProviderError
from ticketwise.services.auth_store import AuthCookieStore

logger = logging.getLogger(__name__)

router = APIRouter()


class HostedSessionManager:
    """Track live hosted sessions, one per relay connection.

    `allow_list` holds the host windows a session may talk to. `relay_origins`
    holds the pages allowed to open the relay besides the app's own origin.
    """

    def __init__(
        self, allow_list: OriginAllowList, relay_origins: Optional[OriginAllowList] = None
    ) -> None:
        self.allow_list = allow_list
        self.relay_origins = relay_origins or OriginAllowList([])
        self._channels: dict[str, HostChannel] = {}
        self._lock = asyncio.Lock()

    def accepts_relay(self, origin: Optional[str], host: Optional[str]) -> bool:
        """Check the handshake Origin header of a relay connection.

        Only pages served by this app or listed in `relay_origins` may open a
        relay. Clients without an Origin header (non-browser) pass; they can
        claim any host origin in `message` frames, so the sealed token is only
        as trustworthy as the relay client.
        """

        if origin is None:
            return True
        try:
            netloc = urlsplit(origin.strip().lower()).netloc
        except ValueError:
            return False
        if host and netloc == host.strip().lower():
            return True
        return self.relay_origins.allows(origin)

    @property
    def active_count(self) -> int:
        return len(self._channels)

    async def register(self, connection_id: str, channel: HostChannel) -> None:
        async with self._lock:
            self._channels[connection_id] = channel

    async def unregister(self, connection_id: str) -> None:
        async with self._lock:
            channel = self._channels.pop(connection_id, None)
        if channel is not None:
            channel.close()

    async def shutdown(self) -> None:
        async with self._lock:
            channels = list(self._channels.values())
            self._channels.clear()
        for channel in channels:
            channel.close()


def get_hosted_manager(websocket: WebSocket) -> HostedSessionManager:
    """Dependency to access the hosted session manager from app state."""

    return websocket.app.state.hosted_manager


def get_ws_auth_store(websocket: WebSocket) -> AuthCookieStore:
    return websocket.app.state.auth_store


@router.websocket("/ws/hosted")
async def ws_hosted(
    websocket: WebSocket,
    manager: HostedSessionManager = Depends(get_hosted_manager),
    store: AuthCookieStore = Depends(get_ws_auth_store),
) -> None:
    """Relay between the pod page and its hosted session.

    The page forwards every window message as `{"kind": "message", "origin",
    "data"}`; the session answers with `{"kind": "post", "target_origin",
    "message"}` frames for the page to hand to `window.parent.postMessage`.
    """

    if not manager.accepts_relay(websocket.headers.get("origin"), websocket.headers.get("host")):
        logger.warning("Refused hosted relay from origin %r", websocket.headers.get("origin"))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    outbox: asyncio.Queue[dict] = asyncio.Queue()
    connection_id = uuid.uuid4().hex
    channel = HostChannel()

    def post(message: str, target_origin: str) -> None:
        outbox.put_nowait({"kind": "post", "target_origin": target_origin, "message": message})

    def on_ready(frame_id: str) -> None:
        outbox.put_nowait({"kind": "ready", "frame_id": frame_id})
        session.request_auth()
        session.request_record()

    def on_auth(identity: MemberIdentity) -> None:
        try:
            token = store.seal_identity(identity)
        except ProviderError as exc:
            outbox.put_nowait({"kind": "error", "code": exc.code, "message": exc.message})
            return
        outbox.put_nowait(
            {"kind": "authenticated", "member_id": identity.member_id, "session_token": token}
        )

    def on_error(exc: ChannelError) -> None:
        outbox.put_nowait(
            {
                "kind": "auth_error",
                "code": exc.code,
                "message": exc.message,
                "retryable": exc.retryable,
            }
        )

    def on_record(record: ActiveRecord) -> None:
        outbox.put_nowait(
            {
                "kind": "record",
                "id": record.id,
                "screen": record.kind,
                "hosted_as": record.hosting_mode,
                "ticket_id": record.ticket_id,
            }
        )

    session = HostedSession(
        manager.allow_list,
        post,
        on_ready=on_ready,
        on_auth=on_auth,
        on_error=on_error,
        on_record=on_record,
    )
    session.attach(channel)
    await manager.register(connection_id, channel)
    sender = asyncio.create_task(_drain(websocket, outbox))
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                logger.debug("Ignoring non-JSON relay frame")
                continue
            if isinstance(frame, dict):
                _handle_frame(session, channel, frame, outbox)
    except WebSocketDisconnect:
        pass
    finally:
        session.teardown()
        await manager.unregister(connection_id)
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender


def _handle_frame(
    session: HostedSession,
    channel: HostChannel,
    frame: dict[str, Any],
    outbox: asyncio.Queue,
) -> None:
    kind = frame.get("kind")
    try:
        if kind == "load":
            session.start(bool(frame.get("embedded", True)))
        elif kind == "message":
            channel.deliver(frame.get("origin"), frame.get("data"))
        elif kind == "request_auth":
            session.request_auth()
        elif kind == "request_record":
            session.request_record()
        elif kind == "refresh_screen":
            session.refresh_screen()
        else:
            logger.debug("Ignoring relay frame kind=%r", kind)
    except ChannelError as exc:
        outbox.put_nowait(
            {"kind": "error", "code": exc.code, "message": exc.message, "retryable": exc.retryable}
        )


async def _drain(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        payload = await outbox.get()
        try:
            await websocket.send_json(payload)
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Hosted relay closed while sending")
            return
