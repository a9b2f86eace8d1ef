# orghub/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from orghub.api.auth_discord import router as discord_auth_router
from orghub.api.token_routes import router as token_router
from orghub.core.config import Settings, load_settings
from orghub.core.db import build_engine, build_session_factory, init_db, ping
from orghub.core.logging import configure_logging
from orghub.discord_client import ProfileFetcher, TokenExchanger
from orghub.services.exchange import ExchangeCoordinator
from orghub.services.state_store import OAuthStateStore
from orghub.services.token_store import TokenStore
from orghub.services.user_reconciler import UserReconciler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    problems = settings.validate()
    if problems:
        for problem in problems:
            logger.error("Configuration error: %s", problem)
        raise RuntimeError("Invalid configuration: " + "; ".join(problems))

    logger.info("Backend configuration: %s", settings.summary())
    # Create DB tables (simple auto-create, no migrations)
    init_db(app.state.engine)
    yield
    app.state.engine.dispose()


def create_app(settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Discord Org Hub Backend", lifespan=lifespan)

    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)
    token_store = TokenStore(session_factory)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.token_store = token_store
    app.state.oauth_states = OAuthStateStore(ttl_seconds=settings.state_ttl_seconds)
    app.state.coordinator = ExchangeCoordinator(
        exchanger=TokenExchanger(settings, http_client),
        profiles=ProfileFetcher(settings, http_client),
        reconciler=UserReconciler(session_factory),
        tokens=token_store,
    )

    # Include routers
    app.include_router(discord_auth_router)
    app.include_router(token_router)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "discord-oauth-backend"}

    @app.get("/health/db")
    def database_health(request: Request):
        try:
            ping(request.app.state.engine)
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            return {"status": "unhealthy", "database": "disconnected", "error": str(e)}
        return {"status": "healthy", "database": "connected"}

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


app = create_app()


def run(host: Optional[str] = None, port: Optional[int] = None) -> None:
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "orghub.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
