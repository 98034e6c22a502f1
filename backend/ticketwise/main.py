from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ticketwise.api import auth as auth_api
from ticketwise.api import chat as chat_api
from ticketwise.api import hosted as hosted_api
from ticketwise.core.config import get_settings
from ticketwise.core.logging import setup_logging
from ticketwise.core.security import frame_security_headers
from ticketwise.gateway.client import ConnectWiseGateway, GatewayCredentials
from ticketwise.hosted.session import OriginAllowList
from ticketwise.services.auth_store import AuthCookieStore
from ticketwise.services.chat_service import ChatService, ConfigHistoryPolicy
from ticketwise.services.lexicon import Lexicon
from ticketwise.services.provider_service import ProviderService
from ticketwise.services.rate_limiter import RateLimiter
from ticketwise.services.resolution_miner import MiningLimits, ResolutionMiner
from ticketwise.services.similarity import SearchPolicy, SimilarityService


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.hosted_manager.shutdown()

    app = FastAPI(lifespan=lifespan)
    lexicon = Lexicon.from_settings(settings)
    host_origins = settings.parsed_host_origins()

    app.state.lexicon = lexicon
    app.state.gateway = ConnectWiseGateway(
        GatewayCredentials.from_settings(settings), timeout_sec=settings.gateway_timeout_sec
    )
    app.state.provider_service = ProviderService(settings)
    app.state.rate_limiter = RateLimiter(
        max_requests=settings.rate_limit_max, window_sec=settings.rate_limit_window_sec
    )
    app.state.auth_store = AuthCookieStore(settings)
    app.state.hosted_manager = hosted_api.HostedSessionManager(
        OriginAllowList(host_origins), OriginAllowList(settings.parsed_cors_origins())
    )
    app.state.chat_service = ChatService(
        gateway=app.state.gateway,
        provider_service=app.state.provider_service,
        similarity_service=SimilarityService(
            lexicon,
            SearchPolicy(
                company_days=settings.similar_company_days,
                global_days=settings.similar_global_days,
                min_company_matches=settings.similar_min_company_matches,
                page_size=settings.similar_page_size,
                max_results=settings.similar_max_results,
                keyword_limit=settings.keyword_limit,
            ),
        ),
        resolution_miner=ResolutionMiner(
            lexicon,
            MiningLimits(
                max_notes=settings.evidence_max_notes, note_chars=settings.evidence_note_chars
            ),
        ),
        rate_limiter=app.state.rate_limiter,
        config_policy=ConfigHistoryPolicy(
            days_back=settings.config_history_days,
            page_size=settings.config_history_page_size,
            max_configs=settings.config_history_max_configs,
        ),
    )

    framing_headers = frame_security_headers(host_origins)

    @app.middleware("http")
    async def add_framing_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(framing_headers)
        if "x-frame-options" in response.headers:
            del response.headers["x-frame-options"]
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_api.router)
    app.include_router(chat_api.ticket_router)
    app.include_router(auth_api.router)
    app.include_router(hosted_api.router)

    return app


app = create_app()
