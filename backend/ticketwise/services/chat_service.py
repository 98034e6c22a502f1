from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Optional

from fastapi import Request

from ticketwise.gateway.client import ConnectWiseGateway
from ticketwise.gateway.models import TicketRecord
from ticketwise.services.context_formatter import (
    MinedTicket,
    TicketContext,
    format_similar_tickets,
    format_similar_tickets_with_notes,
    format_ticket_context,
)
from ticketwise.services.prompt_builder import (
    EMPTY_COMPLETION,
    NO_CONFIG_HISTORY,
    NO_SIMILAR_TICKETS,
    SLASH_COMMANDS,
    PromptBuilder,
    SlashCommand,
    detect_slash_command,
)
from ticketwise.services.provider_service import ProviderService
from ticketwise.services.rate_limiter import RATE_LIMIT_MESSAGE, RateLimiter
from ticketwise.services.resolution_miner import ResolutionMiner
from ticketwise.services.similarity import SimilarityService

logger = logging.getLogger(__name__)

ANONYMOUS_MEMBER = "anonymous"


@dataclass(frozen=True)
class ConfigHistoryPolicy:
    days_back: int = 180
    page_size: int = 30
    max_configs: int = 3


@dataclass
class TurnPlan:
    """Outcome of preparing a chat turn: either prompt messages or a fixed reply."""

    slash_command: Optional[str] = None
    messages: Optional[list[dict]] = None
    reply: Optional[str] = None

    @property
    def short_circuited(self) -> bool:
        return self.reply is not None


@dataclass
class ChatReply:
    message: str
    slash_command: Optional[str] = None
    short_circuited: bool = False


class ChatService:
    """Run one chat turn: throttle, gather ticket evidence, prompt the provider."""

    def __init__(
        self,
        gateway: ConnectWiseGateway,
        provider_service: ProviderService,
        similarity_service: SimilarityService,
        resolution_miner: ResolutionMiner,
        rate_limiter: RateLimiter,
        prompt_builder: PromptBuilder | None = None,
        config_policy: ConfigHistoryPolicy | None = None,
    ) -> None:
        self._gateway = gateway
        self._provider_service = provider_service
        self._similarity = similarity_service
        self._miner = resolution_miner
        self._rate_limiter = rate_limiter
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._config_policy = config_policy or ConfigHistoryPolicy()

    @staticmethod
    def list_commands() -> list[SlashCommand]:
        return list(SLASH_COMMANDS.values())

    async def get_ticket_context(
        self, ticket_id: int, member_id: Optional[str] = None
    ) -> TicketContext:
        """Fetch ticket, notes and configurations together; any failure fails the whole build."""

        gateway = self._gateway.for_member(member_id)
        ticket, notes, configurations = await asyncio.gather(
            gateway.get_ticket(ticket_id),
            gateway.get_notes(ticket_id),
            gateway.get_configurations(ticket_id),
        )
        return TicketContext(ticket=ticket, notes=notes, configurations=configurations)

    async def process_chat(
        self,
        member_id: Optional[str],
        ticket_id: int,
        history: Iterable[dict],
        user_message: str,
    ) -> ChatReply:
        plan = await self.prepare_turn(member_id, ticket_id, history, user_message)
        if plan.short_circuited:
            return ChatReply(plan.reply or "", plan.slash_command, short_circuited=True)

        result = await self._provider_service.complete(plan.messages or [])
        message = result.content.strip() or EMPTY_COMPLETION
        return ChatReply(message, plan.slash_command)

    async def stream_chat(
        self,
        member_id: Optional[str],
        ticket_id: int,
        history: Iterable[dict],
        user_message: str,
    ) -> AsyncIterator[str]:
        plan = await self.prepare_turn(member_id, ticket_id, history, user_message)
        return self._stream_plan(plan)

    async def prepare_turn(
        self,
        member_id: Optional[str],
        ticket_id: int,
        history: Iterable[dict],
        user_message: str,
    ) -> TurnPlan:
        """Build the prompt for a turn, or a fixed reply when no provider call is warranted."""

        decision = self._rate_limiter.check(member_id or ANONYMOUS_MEMBER)
        if not decision.allowed:
            logger.info("Chat turn throttled for member=%s", member_id or ANONYMOUS_MEMBER)
            return TurnPlan(reply=RATE_LIMIT_MESSAGE)

        command, content = detect_slash_command(user_message)
        command_name = command.command if command else None
        context = await self.get_ticket_context(ticket_id, member_id)
        gateway = self._gateway.for_member(member_id)

        similar_text: Optional[str] = None
        config_text: Optional[str] = None
        if command_name == "/similar":
            mined = await self._mine_similar(gateway, context.ticket)
            if not mined:
                return TurnPlan(slash_command=command_name, reply=NO_SIMILAR_TICKETS)
            similar_text = format_similar_tickets_with_notes(mined)
        elif command_name == "/config":
            history_tickets = await self._config_history(gateway, context)
            if not history_tickets:
                return TurnPlan(slash_command=command_name, reply=NO_CONFIG_HISTORY)
            config_text = format_similar_tickets(history_tickets)

        messages = self._prompt_builder.build_messages(
            ticket_context=format_ticket_context(context),
            history=history,
            user_content=content if command else user_message,
            slash_command=command,
            similar_tickets=similar_text,
            config_history=config_text,
        )
        return TurnPlan(slash_command=command_name, messages=messages)

    async def _mine_similar(
        self, gateway: ConnectWiseGateway, ticket: TicketRecord
    ) -> list[MinedTicket]:
        candidates = await self._similarity.find_similar(gateway, ticket)
        if not candidates:
            return []
        return list(
            await asyncio.gather(*(self._mine_candidate(gateway, item) for item in candidates))
        )

    async def _mine_candidate(
        self, gateway: ConnectWiseGateway, ticket: TicketRecord
    ) -> MinedTicket:
        if not self._miner.should_mine(ticket.status_name):
            return MinedTicket(ticket=ticket)
        notes = await gateway.get_notes(ticket.id)
        return MinedTicket(ticket=ticket, evidence=self._miner.mine(notes), closed=True)

    async def _config_history(
        self, gateway: ConnectWiseGateway, context: TicketContext
    ) -> list[TicketRecord]:
        policy = self._config_policy
        configs = context.configurations[: policy.max_configs]
        if not configs:
            return []
        results = await asyncio.gather(
            *(
                gateway.get_configuration_tickets(
                    config.id, days_back=policy.days_back, page_size=policy.page_size
                )
                for config in configs
            )
        )
        tickets: list[TicketRecord] = []
        seen: set[int] = {context.ticket.id}
        for batch in results:
            for ticket in batch:
                if ticket.id in seen:
                    continue
                seen.add(ticket.id)
                tickets.append(ticket)
        return tickets

    async def _stream_plan(self, plan: TurnPlan) -> AsyncIterator[str]:
        if plan.short_circuited:
            yield plan.reply or ""
            return
        produced = False
        async for chunk in self._provider_service.stream(plan.messages or []):
            produced = True
            yield chunk
        if not produced:
            yield EMPTY_COMPLETION


def get_chat_service(request: Request) -> ChatService:
    """Dependency to access the chat service from app state."""

    return request.app.state.chat_service
