import pytest

from adlib_scraper.config import DEFAULT_FALLBACK_KEYWORDS, Settings
from adlib_scraper.errors import ConfigError


def test_settings_from_env_defaults(monkeypatch):
    for name in ("ADLIB_MAX_PAGES", "ADLIB_FALLBACK_KEYWORDS", "SCHEDULER_TIMEZONE", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings.from_env()
    assert settings.timezone == "America/Sao_Paulo"
    assert settings.max_pages == 10
    assert settings.fallback_keywords == DEFAULT_FALLBACK_KEYWORDS
    assert settings.openai_api_key is None


def test_settings_from_env_overrides(monkeypatch):
    monkeypatch.setenv("ADLIB_MAX_PAGES", "3")
    monkeypatch.setenv("ADLIB_FALLBACK_KEYWORDS", "beleza, , dieta")
    monkeypatch.setenv("ADLIB_HEADLESS", "false")
    settings = Settings.from_env()
    assert settings.scraping_config().max_pages == 3
    assert settings.fallback_keywords == ("beleza", "dieta")
    assert settings.headless is False


def test_bad_integer_is_a_config_error(monkeypatch):
    monkeypatch.setenv("ADLIB_MAX_PAGES", "lots")
    with pytest.raises(ConfigError):
        Settings.from_env()


def test_db_password_is_required_without_database_url():
    with pytest.raises(ConfigError):
        Settings(db_host="127.0.0.1").require_db_password()
    assert Settings(database_url="postgresql://localhost/adsdb").require_db_password() == ""
    assert Settings(db_password="secret").require_db_password() == "secret"
