from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from ticketwise.api.errors import to_http_error
from ticketwise.core.security import sanitize_text
from ticketwise.gateway.client import GatewayError
from ticketwise.hosted.envelope import MemberIdentity
from ticketwise.providers.base import ProviderError
from ticketwise.schemas.chat import (
    ChatRequest,
    ChatResponse,
    SlashCommandItem,
    SlashCommandListResponse,
    TicketContextResponse,
)
from ticketwise.services.auth_store import AuthCookieStore, get_auth_store
from ticketwise.services.chat_service import ChatService, get_chat_service
from ticketwise.services.context_formatter import format_ticket_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])
ticket_router = APIRouter(prefix="/api/ticket", tags=["ticket"])

MAX_MESSAGE_LEN = 8000


def get_current_member(
    request: Request, store: AuthCookieStore = Depends(get_auth_store)
) -> Optional[MemberIdentity]:
    """Member identity from the session cookies, if any."""

    return store.read(request)


@router.get("/commands", response_model=SlashCommandListResponse)
async def list_commands(
    chat_service: ChatService = Depends(get_chat_service),
) -> SlashCommandListResponse:
    """List available slash commands."""

    return SlashCommandListResponse(
        commands=[
            SlashCommandItem(command=item.command, description=item.description)
            for item in chat_service.list_commands()
        ]
    )


@router.post("", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    member: Optional[MemberIdentity] = Depends(get_current_member),
    chat_service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """Answer one chat turn about a ticket."""

    message = _clean_message(payload.message)
    try:
        reply = await chat_service.process_chat(
            member_id=member.member_id if member else None,
            ticket_id=payload.ticket_id,
            history=[item.model_dump() for item in payload.history],
            user_message=message,
        )
    except (GatewayError, ProviderError) as exc:
        raise to_http_error(exc) from exc
    return ChatResponse(
        message=reply.message,
        slash_command=reply.slash_command,
        short_circuited=reply.short_circuited,
    )


@router.post("/stream")
async def chat_stream(
    payload: ChatRequest,
    member: Optional[MemberIdentity] = Depends(get_current_member),
    chat_service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """Answer one chat turn, streaming the reply as plain text."""

    message = _clean_message(payload.message)
    try:
        chunks = await chat_service.stream_chat(
            member_id=member.member_id if member else None,
            ticket_id=payload.ticket_id,
            history=[item.model_dump() for item in payload.history],
            user_message=message,
        )
    except (GatewayError, ProviderError) as exc:
        raise to_http_error(exc) from exc
    return StreamingResponse(_guard_stream(chunks), media_type="text/plain; charset=utf-8")


@ticket_router.get("/{ticket_id}/context", response_model=TicketContextResponse)
async def ticket_context(
    ticket_id: int,
    member: Optional[MemberIdentity] = Depends(get_current_member),
    chat_service: ChatService = Depends(get_chat_service),
) -> TicketContextResponse:
    """Return the ticket context the assistant would see for this ticket."""

    try:
        context = await chat_service.get_ticket_context(
            ticket_id, member.member_id if member else None
        )
    except (GatewayError, ProviderError) as exc:
        raise to_http_error(exc) from exc
    return TicketContextResponse(
        ticket_id=context.ticket.id,
        summary=context.ticket.summary or "",
        status=context.ticket.status_name or None,
        note_count=len(context.notes),
        configuration_count=len(context.configurations),
        context=format_ticket_context(context),
    )


async def _guard_stream(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
    # Headers are already sent once streaming starts; failures end the body.
    try:
        async for chunk in chunks:
            yield chunk
    except (GatewayError, ProviderError) as exc:
        logger.warning("Chat stream aborted code=%s", exc.code)
        yield f"\n\n[error] {exc.message}"


def _clean_message(raw: str) -> str:
    message = sanitize_text(raw, MAX_MESSAGE_LEN)
    if not message:
        raise HTTPException(status_code=400, detail="Message must not be empty.")
    return message
