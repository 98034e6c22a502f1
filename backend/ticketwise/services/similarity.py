from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Optional, Sequence

from ticketwise.gateway.client import SEARCH_FIELDS, ConnectWiseGateway
from ticketwise.gateway.models import TicketRecord
from ticketwise.services.keywords import extract_keywords
from ticketwise.services.lexicon import Lexicon

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimilarityQuery:
    """Search predicate for tickets resembling a summary."""

    keywords: tuple[str, ...]
    since_date: date
    company_id: Optional[int] = None
    exclude_id: Optional[int] = None

    def to_conditions(self) -> str:
        """Render the predicate in ConnectWise conditions syntax."""

        parts = [f"dateEntered>=[{self.since_date.isoformat()}]"]
        if self.company_id:
            parts.append(f"company/id={self.company_id}")
        if self.exclude_id:
            parts.append(f"id!={self.exclude_id}")
        keyword_clause = " or ".join(f'summary like "%{keyword}%"' for keyword in self.keywords)
        parts.append(f"({keyword_clause})")
        return " and ".join(parts)


@dataclass(frozen=True)
class SearchPolicy:
    """Two-tier search limits: same company first, then a narrower global window."""

    company_days: int = 90
    global_days: int = 14
    min_company_matches: int = 3
    page_size: int = 20
    max_results: int = 5
    keyword_limit: int = 4


def build_similarity_query(
    summary: str | None,
    lexicon: Lexicon,
    days_back: int,
    company_id: Optional[int] = None,
    exclude_id: Optional[int] = None,
    keyword_limit: int = 4,
    today: Optional[date] = None,
) -> Optional[SimilarityQuery]:
    """Build a similarity query, or None when the summary yields no keywords."""

    keywords = extract_keywords(summary, lexicon, limit=keyword_limit)
    if not keywords:
        return None
    since = (today or date.today()) - timedelta(days=days_back)
    return SimilarityQuery(
        keywords=tuple(keywords),
        since_date=since,
        company_id=company_id,
        exclude_id=exclude_id,
    )


def rank_by_resolution(tickets: Sequence[TicketRecord], lexicon: Lexicon) -> list[TicketRecord]:
    """Put closed-like tickets first, keeping gateway order within each group."""

    return sorted(tickets, key=lambda ticket: not lexicon.is_closed_status(ticket.status_name))


class SimilarityService:
    """Find past tickets that look like the current one."""

    def __init__(
        self,
        lexicon: Lexicon,
        policy: SearchPolicy | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._lexicon = lexicon
        self._policy = policy or SearchPolicy()
        self._today = today

    def build_query(
        self,
        summary: str | None,
        days_back: int,
        company_id: Optional[int] = None,
        exclude_id: Optional[int] = None,
    ) -> Optional[SimilarityQuery]:
        return build_similarity_query(
            summary,
            self._lexicon,
            days_back,
            company_id=company_id,
            exclude_id=exclude_id,
            keyword_limit=self._policy.keyword_limit,
            today=self._today(),
        )

    async def search(
        self, gateway: ConnectWiseGateway, query: Optional[SimilarityQuery]
    ) -> list[TicketRecord]:
        """Run one query and rank its results; a missing query yields nothing."""

        if query is None:
            return []
        tickets = await gateway.search_tickets(
            query.to_conditions(),
            order_by="dateEntered desc",
            page_size=self._policy.page_size,
            fields=SEARCH_FIELDS,
        )
        return rank_by_resolution(tickets[: self._policy.page_size], self._lexicon)

    async def find_similar(
        self, gateway: ConnectWiseGateway, ticket: TicketRecord
    ) -> list[TicketRecord]:
        """Search the ticket's company first and widen to a recent global search if sparse."""

        policy = self._policy
        company_id = ticket.company.id if ticket.company else None
        company_query = self.build_query(
            ticket.summary, policy.company_days, company_id=company_id, exclude_id=ticket.id
        )
        if company_query is None:
            logger.info("No keywords in summary of ticket %s; similarity search skipped", ticket.id)
            return []

        company_tickets = await self.search(gateway, company_query)
        global_tickets: list[TicketRecord] = []
        if len(company_tickets) < policy.min_company_matches:
            global_query = self.build_query(
                ticket.summary, policy.global_days, exclude_id=ticket.id
            )
            global_tickets = await self.search(gateway, global_query)

        combined: list[TicketRecord] = []
        seen: set[int] = set()
        for candidate in [*company_tickets, *global_tickets]:
            if candidate.id in seen:
                continue
            seen.add(candidate.id)
            combined.append(candidate)
            if len(combined) >= policy.max_results:
                break
        return combined
