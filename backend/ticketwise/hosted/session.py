from __future__ import annotations

import enum
import json
import logging
from typing import Any, Callable, Iterable, Optional
from urllib.parse import urlsplit

from ticketwise.hosted.channel import HostChannel
from ticketwise.hosted.envelope import (
    ActiveRecord,
    Envelope,
    EnvelopeKind,
    MemberIdentity,
    ParseOutcome,
    ParseResult,
    extract_event_binding,
    parse_envelope,
    parse_member_auth,
    parse_record_binding,
)

logger = logging.getLogger(__name__)

WILDCARD_TARGET = "*"
AUTH_REQUEST = "getMemberAuthentication"
RECORD_REQUEST = "getScreenObject"
REFRESH_REQUEST = "refreshScreen"


class SessionState(str, enum.Enum):
    AWAITING_FRAME = "awaiting_frame"
    READY = "ready"
    AUTHENTICATED = "authenticated"


class ChannelError(RuntimeError):
    """Raised for host-channel failures that the caller must see."""

    def __init__(self, code: str, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable


class ChannelNotReadyError(ChannelError):
    def __init__(self) -> None:
        super().__init__(
            "CHANNEL_NOT_READY", "Host has not assigned a frame id yet.", retryable=True
        )


class AuthenticationError(ChannelError):
    def __init__(self, message: str) -> None:
        super().__init__("HOST_AUTH_INVALID", message, retryable=True)


class OriginAllowList:
    """Host origins permitted to talk to the pod.

    Entries are exact origins (`https://na.myconnectwise.net`) or subdomain
    wildcards (`https://*.myconnectwise.net`).
    """

    def __init__(self, origins: Iterable[str]) -> None:
        self._exact: set[str] = set()
        self._suffixes: list[tuple[str, str]] = []
        for origin in origins:
            entry = origin.strip().rstrip("/").lower()
            if not entry:
                continue
            scheme, _, host = entry.partition("://")
            if host.startswith("*."):
                self._suffixes.append((scheme, host[1:]))
            else:
                self._exact.add(entry)

    def allows(self, origin: Optional[str]) -> bool:
        if not origin or not isinstance(origin, str):
            return False
        candidate = origin.strip().rstrip("/").lower()
        if candidate in self._exact:
            return True
        try:
            parts = urlsplit(candidate)
        except ValueError:
            return False
        host = parts.netloc
        return any(
            parts.scheme == scheme and host.endswith(suffix) and len(host) > len(suffix)
            for scheme, suffix in self._suffixes
        )


class HostedSession:
    """Handshake and message protocol with the host window for one pod instance.

    Inbound messages pass origin and envelope validation before any handler
    runs. The first valid message pins the trusted origin; from then on every
    outbound message targets that origin only.
    """

    def __init__(
        self,
        allow_list: OriginAllowList,
        post: Callable[[str, str], None],
        on_ready: Optional[Callable[[str], None]] = None,
        on_auth: Optional[Callable[[MemberIdentity], None]] = None,
        on_error: Optional[Callable[[ChannelError], None]] = None,
        on_record: Optional[Callable[[ActiveRecord], None]] = None,
    ) -> None:
        self._allow_list = allow_list
        self._post = post
        self._on_ready = on_ready
        self._on_auth = on_auth
        self._on_error = on_error
        self._on_record = on_record

        self._state = SessionState.AWAITING_FRAME
        self._frame_id: Optional[str] = None
        self._trusted_origin: Optional[str] = None
        self._identity: Optional[MemberIdentity] = None
        self._record: Optional[ActiveRecord] = None
        self._pending: set[str] = set()
        self._channel: Optional[HostChannel] = None
        self.last_record_parse: Optional[ParseResult[ActiveRecord]] = None

        self._dispatch: dict[EnvelopeKind, Callable[[Envelope], None]] = {
            EnvelopeKind.FRAME: self._handle_frame,
            EnvelopeKind.RESPONSE: self._handle_response,
            EnvelopeKind.EVENT: self._handle_event,
            EnvelopeKind.REQUEST: self._handle_host_request,
        }
        self._responses: dict[str, Callable[[Any], None]] = {
            AUTH_REQUEST.lower(): self._handle_auth_response,
            RECORD_REQUEST.lower(): self._handle_record_response,
        }

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def frame_id(self) -> Optional[str]:
        return self._frame_id

    @property
    def trusted_origin(self) -> Optional[str]:
        return self._trusted_origin

    @property
    def member_identity(self) -> Optional[MemberIdentity]:
        return self._identity

    @property
    def active_record(self) -> Optional[ActiveRecord]:
        return self._record

    @property
    def pending_requests(self) -> frozenset[str]:
        return frozenset(self._pending)

    # Lifecycle

    def start(self, embedded: bool) -> bool:
        """Announce the pod to its parent window; only possible while awaiting a frame id."""

        if not embedded:
            logger.warning("Hosted session started outside a host frame; not announcing")
            return False
        if self._state is not SessionState.AWAITING_FRAME:
            return False
        self._post(json.dumps({"message": "ready"}), WILDCARD_TARGET)
        return True

    def attach(self, channel: HostChannel) -> None:
        channel.attach(self.handle_message)
        self._channel = channel

    def teardown(self) -> None:
        if self._channel is not None:
            self._channel.detach(self.handle_message)
            self._channel = None
        self._pending.clear()

    # Inbound

    def handle_message(self, origin: Optional[str], data: Any) -> Optional[Envelope]:
        """Validate and dispatch one inbound message; returns the envelope if it was handled."""

        if not self._allow_list.allows(origin):
            logger.debug("Dropped host message from disallowed origin %r", origin)
            return None
        if self._trusted_origin is not None and origin != self._trusted_origin:
            logger.debug("Dropped host message from untrusted origin %r", origin)
            return None
        envelope = parse_envelope(data)
        if envelope is None:
            return None

        if self._trusted_origin is None:
            self._trusted_origin = origin
            logger.info("Pinned host origin %s", origin)
        self._dispatch[envelope.kind](envelope)
        return envelope

    def _handle_frame(self, envelope: Envelope) -> None:
        if self._frame_id is not None:
            if envelope.frame_id != self._frame_id:
                logger.warning("Ignoring reassigned frame id; keeping %s", self._frame_id)
            return
        self._frame_id = envelope.frame_id
        # An identity delivered ahead of the frame id stays in force.
        if self._state is SessionState.AWAITING_FRAME:
            self._state = SessionState.READY
        if self._on_ready:
            self._on_ready(self._frame_id or "")

    def _handle_response(self, envelope: Envelope) -> None:
        name = envelope.name or ""
        if name not in self._pending:
            if name == AUTH_REQUEST.lower():
                self._handle_early_auth(envelope.data)
            else:
                logger.debug("Ignoring unsolicited host response %s", name)
            return
        handler = self._responses.get(name)
        if handler is None:
            return
        self._pending.discard(name)
        handler(envelope.data)

    def _handle_auth_response(self, data: Any) -> None:
        if self._identity is not None:
            return
        result = parse_member_auth(data)
        if not result.ok or result.value is None:
            logger.warning("Host sent invalid authentication payload: %s", result.error)
            if self._on_error:
                self._on_error(AuthenticationError("Invalid authentication data from host."))
            return
        self._accept_identity(result.value)

    def _handle_early_auth(self, data: Any) -> None:
        """Take an authentication reply that arrived without a pending request.

        The host may answer before the frame id or repeat an answer; only a
        schema-valid payload is kept and failures stay silent.
        """

        if self._identity is not None:
            return
        result = parse_member_auth(data)
        if not result.ok or result.value is None:
            logger.debug("Ignoring unsolicited authentication payload: %s", result.error)
            return
        self._accept_identity(result.value)

    def _accept_identity(self, identity: MemberIdentity) -> None:
        self._identity = identity
        self._state = SessionState.AUTHENTICATED
        if self._on_auth:
            self._on_auth(identity)

    def _handle_record_response(self, data: Any) -> None:
        self._apply_record(parse_record_binding(data))

    def _handle_event(self, envelope: Envelope) -> None:
        # Acknowledge before looking at the payload.
        self._send(
            {"event": envelope.name, "_id": envelope.correlation_id, "result": "success"}
        )
        binding = extract_event_binding(envelope.data)
        if binding is not None:
            self._apply_record(binding)

    def _handle_host_request(self, envelope: Envelope) -> None:
        logger.debug("Ignoring host-originated request %s", envelope.name)

    def _apply_record(self, result: ParseResult[ActiveRecord]) -> None:
        self.last_record_parse = result
        if result.outcome is ParseOutcome.REJECTED or result.value is None:
            logger.debug("Discarded record binding: %s", result.error)
            return
        if result.outcome is ParseOutcome.LENIENT:
            logger.info("Record binding accepted via fallback parsing: %s", result.error)
        self._record = result.value
        if self._on_record:
            self._on_record(result.value)

    # Outbound

    def request_auth(self) -> None:
        """Ask the host for member authentication; safe to repeat after a failure."""

        if self._state is SessionState.AUTHENTICATED:
            return
        self._request(AUTH_REQUEST)

    def request_record(self) -> None:
        """Ask the host which record is open."""

        self._request(RECORD_REQUEST)

    def refresh_screen(self) -> None:
        self._require_ready()
        self._send({"hosted_request": REFRESH_REQUEST, "frameID": self._frame_id})

    def _request(self, name: str) -> None:
        self._require_ready()
        self._pending.add(name.lower())
        self._send({"hosted_request": name, "frameID": self._frame_id})

    def _require_ready(self) -> None:
        if self._state is SessionState.AWAITING_FRAME or self._trusted_origin is None:
            raise ChannelNotReadyError()

    def _send(self, payload: dict) -> None:
        if self._trusted_origin is None:
            raise ChannelNotReadyError()
        self._post(json.dumps(payload), self._trusted_origin)
