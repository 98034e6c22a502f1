from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_env: str = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    # NOTE: Keep list-like values as strings to avoid pydantic-settings JSON-decoding them.
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    app_secret_key: str = Field(default="", alias="APP_SECRET_KEY")

    cw_client_id: str = Field(default="", alias="CW_CLIENT_ID")
    cw_company_url: str = Field(default="", alias="CW_COMPANY_URL")
    cw_code_base: str = Field(default="v4_6_release", alias="CW_CODE_BASE")
    cw_company_id: str = Field(default="", alias="CW_COMPANY_ID")
    cw_public_key: str = Field(default="", alias="CW_PUBLIC_KEY")
    cw_private_key: str = Field(default="", alias="CW_PRIVATE_KEY")
    gateway_timeout_sec: float = Field(default=30, alias="GATEWAY_TIMEOUT_SEC")

    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o", alias="OPENAI_MODEL")
    openai_base_url: str = Field(default="https://api.openai.com", alias="OPENAI_BASE_URL")
    provider_timeout_sec: float = Field(default=90, alias="PROVIDER_TIMEOUT_SEC")
    ai_temperature: float = Field(default=0.3, alias="AI_TEMPERATURE")
    ai_max_tokens: int = Field(default=2000, alias="AI_MAX_TOKENS")

    host_allowed_origins: str = Field(
        default="https://*.myconnectwise.net,https://*.connectwisedev.com",
        alias="HOST_ALLOWED_ORIGINS",
    )

    rate_limit_max: int = Field(default=30, alias="RATE_LIMIT_MAX")
    rate_limit_window_sec: float = Field(default=60, alias="RATE_LIMIT_WINDOW_SEC")

    keyword_limit: int = Field(default=4, alias="KEYWORD_LIMIT")
    similar_company_days: int = Field(default=90, alias="SIMILAR_COMPANY_DAYS")
    similar_global_days: int = Field(default=14, alias="SIMILAR_GLOBAL_DAYS")
    similar_min_company_matches: int = Field(default=3, alias="SIMILAR_MIN_COMPANY_MATCHES")
    similar_page_size: int = Field(default=20, alias="SIMILAR_PAGE_SIZE")
    similar_max_results: int = Field(default=5, alias="SIMILAR_MAX_RESULTS")
    config_history_days: int = Field(default=180, alias="CONFIG_HISTORY_DAYS")
    config_history_page_size: int = Field(default=30, alias="CONFIG_HISTORY_PAGE_SIZE")
    config_history_max_configs: int = Field(default=3, alias="CONFIG_HISTORY_MAX_CONFIGS")
    evidence_max_notes: int = Field(default=10, alias="EVIDENCE_MAX_NOTES")
    evidence_note_chars: int = Field(default=500, alias="EVIDENCE_NOTE_CHARS")

    lexicon_stop_words: str = Field(default="", alias="LEXICON_STOP_WORDS")
    lexicon_closed_statuses: str = Field(default="", alias="LEXICON_CLOSED_STATUSES")
    lexicon_action_verbs: str = Field(default="", alias="LEXICON_ACTION_VERBS")

    model_config = SettingsConfigDict(env_file=(".env", "backend/.env"), extra="ignore")

    def parsed_cors_origins(self) -> List[str]:
        """Return CORS origins parsed from env var."""

        return parse_list(self.cors_origins)

    def parsed_host_origins(self) -> List[str]:
        """Return the host origin allow-list."""

        return parse_list(self.host_allowed_origins)


def parse_list(raw: str | None) -> List[str]:
    """Parse a comma-delimited or JSON list string into clean items."""

    raw = (raw or "").strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            value: Any = json.loads(raw)
            if isinstance(value, list):
                items = [str(item).strip() for item in value]
                return [item for item in items if item]
        except ValueError:
            pass
    return [item.strip() for item in raw.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
