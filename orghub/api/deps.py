# orghub/api/deps.py
from fastapi import Request

from orghub.core.config import Settings
from orghub.services.exchange import ExchangeCoordinator
from orghub.services.state_store import OAuthStateStore
from orghub.services.token_store import TokenStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_coordinator(request: Request) -> ExchangeCoordinator:
    return request.app.state.coordinator


def get_state_store(request: Request) -> OAuthStateStore:
    return request.app.state.oauth_states


def get_token_store(request: Request) -> TokenStore:
    return request.app.state.token_store
