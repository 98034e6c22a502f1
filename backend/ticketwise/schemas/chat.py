from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from ticketwise.schemas.common import APIModel


class ChatHistoryItem(APIModel):
    """One prior turn of the conversation."""

    role: Literal["user", "assistant", "system"]
    content: str = Field(max_length=20000)


class ChatRequest(APIModel):
    """Payload for a chat turn about a ticket."""

    ticket_id: int = Field(ge=1)
    message: str = Field(min_length=1, max_length=8000)
    history: list[ChatHistoryItem] = Field(default_factory=list, max_length=200)


class ChatResponse(APIModel):
    message: str
    slash_command: Optional[str] = None
    short_circuited: bool = False


class SlashCommandItem(APIModel):
    command: str
    description: str


class SlashCommandListResponse(APIModel):
    commands: list[SlashCommandItem]


class TicketContextResponse(APIModel):
    """Formatted ticket context as the assistant sees it."""

    ticket_id: int
    summary: str
    status: Optional[str] = None
    note_count: int
    configuration_count: int
    context: str
