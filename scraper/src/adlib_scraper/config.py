"""Process settings resolved from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import ConfigError
from .models import DEFAULT_DELAY_MS, DEFAULT_MAX_PAGES, DEFAULT_USER_AGENT, ScrapingConfig

SCRIPT_NAME = "adlib"
SCRIPT_VERSION = "2025-11-02.1"

DEFAULT_TIMEZONE = "America/Sao_Paulo"
DEFAULT_COUNTRY = "BR"
DEFAULT_OPENAI_MODEL = "gpt-4-turbo-preview"
DEFAULT_FALLBACK_KEYWORDS = ("emagrecimento", "ganho de massa", "beleza", "dinheiro", "relacionamento")


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        parsed = int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    return max(minimum, parsed)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_scraper_version() -> str:
    """Return a human-readable version string with an env override."""

    return os.getenv("ADLIB_SCRAPER_VERSION", f"{SCRIPT_NAME}:{SCRIPT_VERSION}")


@dataclass(frozen=True)
class Settings:
    database_url: str | None = None
    db_host: str | None = None
    db_port: int = 5432
    db_name: str = "adsdb"
    db_user: str = "postgres"
    db_password: str | None = None
    db_sslmode: str = "prefer"
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_max_tokens: int = 2000
    openai_temperature: float = 0.3
    openai_timeout_s: float = 60.0
    enrichment_delay_ms: int = 1000
    timezone: str = DEFAULT_TIMEZONE
    country: str = DEFAULT_COUNTRY
    keyword_pages: int = 5
    result_timeout_ms: int = 10_000
    navigation_timeout_ms: int = 30_000
    headless: bool = True
    debug_html: bool = False
    max_pages: int = DEFAULT_MAX_PAGES
    delay_between_requests: int = DEFAULT_DELAY_MS
    user_agent: str = DEFAULT_USER_AGENT
    use_proxy: bool = False
    proxy_server: str | None = None
    fallback_keywords: tuple[str, ...] = DEFAULT_FALLBACK_KEYWORDS

    @classmethod
    def from_env(cls) -> "Settings":
        fallback = os.getenv("ADLIB_FALLBACK_KEYWORDS")
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            db_host=os.getenv("DB_HOST") or None,
            db_port=_env_int("DB_PORT", 5432, minimum=1),
            db_name=os.getenv("DB_NAME", "adsdb"),
            db_user=os.getenv("DB_USER", "postgres"),
            db_password=os.getenv("DB_PASSWORD") or None,
            db_sslmode=os.getenv("DB_SSLMODE", "prefer"),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            openai_model=os.getenv("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
            openai_max_tokens=_env_int("OPENAI_MAX_TOKENS", 2000, minimum=1),
            openai_temperature=_env_float("OPENAI_TEMPERATURE", 0.3),
            openai_timeout_s=_env_float("OPENAI_TIMEOUT_S", 60.0),
            enrichment_delay_ms=_env_int("ENRICHMENT_DELAY_MS", 1000),
            timezone=os.getenv("SCHEDULER_TIMEZONE") or DEFAULT_TIMEZONE,
            country=os.getenv("ADLIB_COUNTRY") or DEFAULT_COUNTRY,
            keyword_pages=_env_int("ADLIB_KEYWORD_PAGES", 5, minimum=1),
            result_timeout_ms=_env_int("ADLIB_RESULT_TIMEOUT_MS", 10_000, minimum=1),
            navigation_timeout_ms=_env_int("ADLIB_NAVIGATION_TIMEOUT_MS", 30_000, minimum=1),
            headless=_env_bool("ADLIB_HEADLESS", True),
            debug_html=_env_bool("ADLIB_DEBUG_HTML", False),
            max_pages=_env_int("ADLIB_MAX_PAGES", DEFAULT_MAX_PAGES, minimum=1),
            delay_between_requests=_env_int("ADLIB_DELAY_MS", DEFAULT_DELAY_MS),
            user_agent=os.getenv("ADLIB_USER_AGENT") or DEFAULT_USER_AGENT,
            use_proxy=_env_bool("ADLIB_USE_PROXY", False),
            proxy_server=os.getenv("ADLIB_PROXY_SERVER") or None,
            fallback_keywords=tuple(k.strip() for k in fallback.split(",") if k.strip())
            if fallback
            else DEFAULT_FALLBACK_KEYWORDS,
        )

    def scraping_config(self) -> ScrapingConfig:
        return ScrapingConfig(
            max_pages=self.max_pages,
            delay_between_requests=self.delay_between_requests,
            use_proxy=self.use_proxy,
            user_agent=self.user_agent,
        )

    def require_db_password(self) -> str:
        if self.database_url:
            return ""
        if not self.db_password:
            raise ConfigError("DB_PASSWORD environment variable is required for database connections")
        return self.db_password


__all__ = [
    "DEFAULT_COUNTRY",
    "DEFAULT_FALLBACK_KEYWORDS",
    "DEFAULT_OPENAI_MODEL",
    "DEFAULT_TIMEZONE",
    "Settings",
    "get_scraper_version",
]
