from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any, Generic, Literal, Optional, Sequence, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

T = TypeVar("T")


class EnvelopeKind(str, enum.Enum):
    FRAME = "frame"
    RESPONSE = "response"
    EVENT = "event"
    REQUEST = "request"


@dataclass(frozen=True)
class Envelope:
    """One inbound host message, reduced to the single role it plays."""

    kind: EnvelopeKind
    name: Optional[str] = None
    data: Any = None
    frame_id: Optional[str] = None
    correlation_id: Any = None


def parse_envelope(raw: Any) -> Optional[Envelope]:
    """Parse a window message (JSON string or mapping); None when it is not ours.

    Host pages share the channel with unrelated traffic, so anything that does
    not look like a hosted-API envelope is ignored rather than rejected.
    """

    payload = _load(raw)
    if not isinstance(payload, dict):
        return None

    frame_id = payload.get("MessageFrameID")
    if isinstance(frame_id, (str, int)) and not isinstance(frame_id, bool) and str(frame_id):
        return Envelope(kind=EnvelopeKind.FRAME, frame_id=str(frame_id))

    response = payload.get("response")
    if isinstance(response, str) and response.strip() and "data" in payload:
        return Envelope(
            kind=EnvelopeKind.RESPONSE,
            name=response.strip().lower(),
            data=_load(payload.get("data")),
        )

    event = payload.get("event")
    if isinstance(event, str) and event.strip():
        return Envelope(
            kind=EnvelopeKind.EVENT,
            name=event,
            data=_load(payload.get("data")),
            correlation_id=payload.get("_id"),
        )

    request = payload.get("hosted_request")
    if isinstance(request, str) and request.strip():
        return Envelope(kind=EnvelopeKind.REQUEST, name=request)
    return None


def _load(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            return None
    return raw


class ParseOutcome(str, enum.Enum):
    STRICT = "strict"
    LENIENT = "lenient"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Tagged result recording which parsing path produced the value."""

    outcome: ParseOutcome
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not ParseOutcome.REJECTED


class _HostModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MemberAuthPayload(_HostModel):
    """Wire shape of the host's getMemberAuthentication response."""

    code_base: Optional[str] = Field(default=None, alias="codeBase")
    company_id: str = Field(alias="companyid")
    member_context: str = Field(alias="memberContext")
    member_email: str = Field(alias="memberEmail")
    member_id: str = Field(alias="memberid")
    member_hash: str = Field(alias="memberHash")
    site: str
    sso_access_token: Optional[str] = Field(default=None, alias="ssoAccessToken")
    sso_id_token: Optional[str] = Field(default=None, alias="ssoIdToken")


class ScreenObjectPayload(_HostModel):
    """Wire shape of the host's getScreenObject response."""

    hosted_as: Literal["pod", "tab"] = Field(alias="hostedAs")
    id: Union[int, str]
    screen: Literal["ticket", "company", "contact", "salesorder"]


@dataclass(frozen=True)
class MemberIdentity:
    member_id: str
    member_hash: str
    email: Optional[str] = None
    company_id: Optional[str] = None
    member_context: Optional[str] = None
    code_base: Optional[str] = None
    site: Optional[str] = None


@dataclass(frozen=True)
class ActiveRecord:
    """The record currently open in the host window."""

    id: str
    kind: str = "ticket"
    hosting_mode: str = "pod"

    @property
    def ticket_id(self) -> Optional[int]:
        if self.kind != "ticket":
            return None
        try:
            return int(self.id)
        except ValueError:
            return None


def parse_member_auth(data: Any) -> ParseResult[MemberIdentity]:
    """Strictly validate an authentication payload; there is no lenient path."""

    try:
        payload = MemberAuthPayload.model_validate(data)
    except ValidationError as exc:
        return ParseResult(ParseOutcome.REJECTED, error=_summarize(exc))
    identity = MemberIdentity(
        member_id=payload.member_id,
        member_hash=payload.member_hash,
        email=payload.member_email,
        company_id=payload.company_id,
        member_context=payload.member_context,
        code_base=payload.code_base,
        site=payload.site,
    )
    return ParseResult(ParseOutcome.STRICT, identity)


def parse_record_binding(data: Any) -> ParseResult[ActiveRecord]:
    """Parse a screen object, falling back to field extraction with defaults."""

    try:
        payload = ScreenObjectPayload.model_validate(data)
    except ValidationError as exc:
        lenient = _lenient_record(data)
        if lenient is None:
            return ParseResult(ParseOutcome.REJECTED, error=_summarize(exc))
        return ParseResult(ParseOutcome.LENIENT, lenient, error=_summarize(exc))
    return ParseResult(
        ParseOutcome.STRICT,
        ActiveRecord(id=str(payload.id), kind=payload.screen, hosting_mode=payload.hosted_as),
    )


def extract_event_binding(data: Any) -> Optional[ParseResult[ActiveRecord]]:
    """Return the record binding embedded in an event payload, if it carries one."""

    if not isinstance(data, dict):
        return None
    for key in ("screenObject", "screen_object", "record"):
        if key in data:
            return parse_record_binding(_load(data[key]))
    if "id" in data:
        return parse_record_binding(data)
    return None


def _lenient_record(data: Any) -> Optional[ActiveRecord]:
    record_id: Any = None
    screen: Any = None
    hosted_as: Any = None
    if isinstance(data, dict):
        record_id = data.get("id")
        screen = data.get("screen")
        hosted_as = data.get("hostedAs")
    elif isinstance(data, Sequence) and not isinstance(data, str):
        items = list(data) + [None, None, None]
        record_id, screen, hosted_as = items[0], items[1], items[2]

    if isinstance(record_id, bool) or not isinstance(record_id, (str, int)):
        return None
    if not str(record_id).strip():
        return None
    return ActiveRecord(
        id=str(record_id).strip(),
        kind=screen.strip().lower() if isinstance(screen, str) and screen.strip() else "ticket",
        hosting_mode=hosted_as.strip().lower()
        if isinstance(hosted_as, str) and hosted_as.strip()
        else "pod",
    )


def _summarize(exc: ValidationError) -> str:
    fields = sorted({".".join(str(part) for part in err["loc"]) or "payload" for err in exc.errors()})
    return f"invalid fields: {', '.join(fields)}"
