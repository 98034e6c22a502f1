import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from datetime import date
from typing import AsyncIterator, Optional

import httpx
import pytest

from ticketwise.core.config import get_settings
from ticketwise.gateway.models import ConfigurationRecord, NoteRecord, TicketRecord, sort_notes
from ticketwise.main import create_app
from ticketwise.providers.base import LLMResult, ProviderRuntimeConfig
from ticketwise.services.chat_service import ChatService
from ticketwise.services.lexicon import Lexicon
from ticketwise.services.provider_service import ProviderService
from ticketwise.services.rate_limiter import RateLimiter
from ticketwise.services.resolution_miner import ResolutionMiner
from ticketwise.services.similarity import SimilarityService

TODAY = date(2024, 6, 1)


@pytest.fixture
def app(monkeypatch):
    monkeypatch.setenv("APP_SECRET_KEY", "test-secret")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("CW_COMPANY_URL", "cw.example.com")
    monkeypatch.setenv("HOST_ALLOWED_ORIGINS", "https://*.myconnectwise.net")
    get_settings.cache_clear()
    app = create_app()
    app.state.provider_service.set_adapter(StubAdapter())
    gateway = FakeGateway()
    app.state.gateway = gateway
    app.state.chat_service = build_chat_service(
        gateway, app.state.provider_service, app.state.rate_limiter
    )
    yield app
    get_settings.cache_clear()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="https://test") as client:
        yield client


@pytest.fixture
def anyio_backend():
    return "asyncio"


def build_chat_service(
    gateway: "FakeGateway",
    provider_service: ProviderService,
    rate_limiter: Optional[RateLimiter] = None,
) -> ChatService:
    lexicon = Lexicon()
    return ChatService(
        gateway=gateway,
        provider_service=provider_service,
        similarity_service=SimilarityService(lexicon, today=lambda: TODAY),
        resolution_miner=ResolutionMiner(lexicon),
        rate_limiter=rate_limiter or RateLimiter(),
    )


def make_ticket(ticket_id: int, summary: str = "Printer offline", status: str = "New", **extra) -> TicketRecord:
    payload = {
        "id": ticket_id,
        "summary": summary,
        "status": {"id": 1, "name": status},
        "company": {"id": 42, "name": "Contoso"},
    }
    payload.update(extra)
    return TicketRecord.model_validate(payload)


def make_note(note_id: int, text: str, created: Optional[str] = None, **flags) -> NoteRecord:
    payload = {"id": note_id, "text": text, "dateCreated": created, "member": {"name": "Alex"}}
    payload.update(flags)
    return NoteRecord.model_validate(payload)


class StubAdapter:
    """Adapter stub used to avoid external API calls in tests."""

    def __init__(self, content: str = "Stub answer.") -> None:
        self.content = content
        self.calls: list[list[dict]] = []

    async def generate(self, cfg: ProviderRuntimeConfig, messages: list[dict]) -> LLMResult:
        self.calls.append(messages)
        return LLMResult(
            content=self.content,
            model_provider=cfg.provider,
            model_name=cfg.model_name,
            token_in=1,
            token_out=1,
        )

    async def stream(self, cfg: ProviderRuntimeConfig, messages: list[dict]) -> AsyncIterator[str]:
        self.calls.append(messages)
        for word in self.content.split(" "):
            yield word + " "


class FakeGateway:
    """In-memory ticket gateway that records every call."""

    def __init__(self) -> None:
        self.tickets: dict[int, TicketRecord] = {1: make_ticket(1)}
        self.notes: dict[int, list[NoteRecord]] = {}
        self.configurations: dict[int, list[ConfigurationRecord]] = {}
        self.search_results: list[list[TicketRecord]] = []
        self.config_tickets: dict[int, list[TicketRecord]] = {}
        self.calls: list[tuple] = []
        self.member_ids: list[Optional[str]] = []

    def for_member(self, member_id: Optional[str]) -> "FakeGateway":
        self.member_ids.append(member_id)
        return self

    async def get_ticket(self, ticket_id: int) -> TicketRecord:
        self.calls.append(("get_ticket", ticket_id))
        return self.tickets[ticket_id]

    async def get_notes(self, ticket_id: int) -> list[NoteRecord]:
        self.calls.append(("get_notes", ticket_id))
        return sort_notes(self.notes.get(ticket_id, []))

    async def get_configurations(self, ticket_id: int) -> list[ConfigurationRecord]:
        self.calls.append(("get_configurations", ticket_id))
        return self.configurations.get(ticket_id, [])

    async def search_tickets(self, conditions, order_by=None, page_size=None, fields=()):
        self.calls.append(("search_tickets", conditions))
        if self.search_results:
            return self.search_results.pop(0)
        return []

    async def get_configuration_tickets(self, config_id, days_back=180, page_size=30):
        self.calls.append(("get_configuration_tickets", config_id))
        return self.config_tickets.get(config_id, [])
