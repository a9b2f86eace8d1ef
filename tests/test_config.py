from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest

from orghub.core.config import Settings, load_settings
from orghub.services.state_store import OAuthStateStore


@pytest.fixture(autouse=True)
def _fresh_settings_cache():
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def test_defaults_from_environment(monkeypatch) -> None:
    for name in ("DISCORD_CLIENT_ID", "DISCORD_TOKEN_URL", "HTTP_TIMEOUT_SECONDS", "OAUTH_ENFORCE_STATE"):
        monkeypatch.delenv(name, raising=False)

    s = load_settings()

    assert s.discord_token_url == "https://discord.com/api/oauth2/token"
    assert s.discord_user_api_url == "https://discord.com/api/users/@me"
    assert s.http_timeout_seconds == 10.0
    assert s.enforce_state is True
    assert "DISCORD_CLIENT_ID is required" in s.validate()


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.setenv("DISCORD_CLIENT_ID", "cid")
    monkeypatch.setenv("DISCORD_CLIENT_SECRET", "csecret")
    monkeypatch.setenv("HTTP_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("OAUTH_ENFORCE_STATE", "off")
    monkeypatch.setenv("OAUTH_STATE_TTL_SECONDS", "5")
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.test, https://b.test,")

    s = load_settings()

    assert s.discord_client_id == "cid"
    assert s.http_timeout_seconds == 2.5
    assert s.enforce_state is False
    assert s.state_ttl_seconds == 60
    assert s.allowed_origins == ["https://a.test", "https://b.test"]
    assert s.validate() == []


def test_load_settings_is_cached() -> None:
    assert load_settings() is load_settings()


def test_bind_address_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("HOST", "0.0.0.0")
    monkeypatch.setenv("PORT", "9000")

    s = load_settings()

    assert (s.host, s.port) == ("0.0.0.0", 9000)


def test_bind_address_defaults() -> None:
    s = Settings()

    assert (s.host, s.port) == ("127.0.0.1", 8080)


def test_redirect_helpers() -> None:
    s = Settings(frontend_url="https://app.example.com/")

    assert s.oauth_success_redirect("user123") == "https://app.example.com/?auth=success&user_id=user123"
    assert s.oauth_error_redirect("invalid_request") == "https://app.example.com/?error=invalid_request"


def test_authorize_url_carries_state() -> None:
    s = Settings(discord_client_id="cid", discord_oauth_scopes="identify email")

    parsed = urlparse(s.authorize_url("st4te"))
    params = parse_qs(parsed.query)

    assert parsed.netloc == "discord.com"
    assert params["state"] == ["st4te"]
    assert params["scope"] == ["identify email"]


def test_production_requires_server_database() -> None:
    s = Settings(discord_client_id="a", discord_client_secret="b", environment="production")

    assert s.validate() == ["DATABASE_URL must point at a server database in production"]


def test_summary_hides_database_credentials() -> None:
    s = Settings(database_url="postgresql://user:hunter2@db:5432/hub", discord_client_secret="topsecret")

    summary = s.summary()
    assert "hunter2" not in summary
    assert "topsecret" not in summary
    assert "db:5432/hub" in summary


def test_state_store_is_single_use_and_expires() -> None:
    now = {"t": 1000.0}
    store = OAuthStateStore(ttl_seconds=60, clock=lambda: now["t"])

    a = store.issue()
    b = store.issue()
    assert a != b
    assert store.consume(a) is True
    assert store.consume(a) is False

    now["t"] += 61
    assert store.consume(b) is False
    assert store.consume(None) is False


def test_state_store_prunes_expired_entries() -> None:
    now = {"t": 0.0}
    store = OAuthStateStore(ttl_seconds=60, clock=lambda: now["t"])
    store.issue()
    now["t"] = 120.0
    store.issue()

    assert len(store) == 1
