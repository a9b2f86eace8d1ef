"""
Shared fixtures.

Each test gets its own SQLite file under tmp_path and a fake Discord API served
through httpx.MockTransport, so nothing touches the network.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest
from sqlalchemy import func, select

from orghub.core.config import Settings
from orghub.core.db import build_engine, build_session_factory, init_db
from orghub.discord_client import Profile, ProfileFetcher, TokenExchanger
from orghub.services.exchange import ExchangeCoordinator
from orghub.services.token_store import TokenStore
from orghub.services.user_reconciler import UserReconciler

TOKEN_URL = "https://discord.test/api/oauth2/token"
USER_URL = "https://discord.test/api/users/@me"
FIXED_NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeDiscord:
    """Canned responses for the token and user-info endpoints, plus a request log."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.token_response: Tuple[int, Any] = (200, {"access_token": "tok1", "expires_in": 3600})
        self.user_response: Tuple[int, Any] = (200, {"id": "999", "username": "alice"})
        self.raise_on: Dict[str, Exception] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self.raise_on:
            raise self.raise_on[url]
        if url == TOKEN_URL:
            return self._respond(self.token_response)
        if url == USER_URL:
            return self._respond(self.user_response)
        return httpx.Response(404, json={"message": "404: Not Found"})

    @staticmethod
    def _respond(reply: Tuple[int, Any]) -> httpx.Response:
        status, body = reply
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=str(body))

    def login_as(self, discord_id: str, username: str, **extra: Any) -> None:
        self.user_response = (200, {"id": discord_id, "username": username, **extra})

    def issue_token(self, access_token: str, **extra: Any) -> None:
        self.token_response = (200, {"access_token": access_token, **extra})


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        discord_client_id="client-123",
        discord_client_secret="secret-456",
        discord_redirect_uri="http://front.test/auth/discord/callback",
        discord_token_url=TOKEN_URL,
        discord_user_api_url=USER_URL,
        discord_authorize_url="https://discord.test/api/oauth2/authorize",
        discord_cdn_base_url="https://cdn.discord.test",
        database_url=f"sqlite:///{tmp_path / 'orghub-test.db'}",
        frontend_url="http://front.test",
        allowed_origins=["http://front.test"],
    )


@pytest.fixture
def engine(settings: Settings):
    eng = build_engine(settings.database_url)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def fake_discord() -> FakeDiscord:
    return FakeDiscord()


@pytest.fixture
def http_client(fake_discord: FakeDiscord) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_discord.handler))


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def reconciler(session_factory) -> UserReconciler:
    return UserReconciler(session_factory)


@pytest.fixture
def token_store(session_factory, clock) -> TokenStore:
    return TokenStore(session_factory, clock=clock)


@pytest.fixture
def coordinator(settings, http_client, reconciler, token_store, clock) -> ExchangeCoordinator:
    return ExchangeCoordinator(
        exchanger=TokenExchanger(settings, http_client, clock=clock),
        profiles=ProfileFetcher(settings, http_client),
        reconciler=reconciler,
        tokens=token_store,
    )


@pytest.fixture
def count_rows(session_factory) -> Callable[[type], int]:
    def _count(model: type) -> int:
        with session_factory() as db:
            return db.execute(select(func.count()).select_from(model)).scalar_one()

    return _count


@pytest.fixture
def make_user(reconciler: UserReconciler) -> Callable[..., Any]:
    def _make(discord_id: str = "42", display_name: str = "bob") -> Any:
        return reconciler.reconcile(Profile(discord_id=discord_id, display_name=display_name))

    return _make


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW
