# orghub/api/auth_discord.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from orghub.api.deps import get_coordinator, get_settings, get_state_store
from orghub.core.config import Settings
from orghub.core.errors import InvalidState, LoginError
from orghub.services.exchange import ExchangeCoordinator
from orghub.services.state_store import OAuthStateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/discord", tags=["auth"])


@router.get("/login")
def discord_login(
    settings: Settings = Depends(get_settings),
    states: OAuthStateStore = Depends(get_state_store),
):
    # 1. Generate random state token (protects against CSRF)
    state = states.issue()

    # 2. Redirect the user to Discord's consent screen
    return RedirectResponse(settings.authorize_url(state))


@router.get("/callback")
async def discord_callback(
    code: Optional[str] = None,
    error: Optional[str] = None,
    state: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    states: OAuthStateStore = Depends(get_state_store),
    coordinator: ExchangeCoordinator = Depends(get_coordinator),
):
    # 1. Validate state (denials are reported without one)
    state_ok = states.consume(state)
    if settings.enforce_state and not error and not state_ok:
        logger.warning("Rejected Discord callback with unknown or expired state")
        return RedirectResponse(settings.oauth_error_redirect(InvalidState.reason), status_code=302)

    # 2. Exchange code -> token -> profile -> user -> stored token
    try:
        user_id = await coordinator.complete_login(code=code, error=error)
    except LoginError as e:
        return RedirectResponse(settings.oauth_error_redirect(e.reason), status_code=302)

    # 3. Hand the user id back to the frontend
    return RedirectResponse(settings.oauth_success_redirect(str(user_id)), status_code=302)


@router.get("/exchange")
async def discord_exchange(
    code: Optional[str] = None,
    coordinator: ExchangeCoordinator = Depends(get_coordinator),
):
    """Programmatic variant of the callback for frontends that receive the code themselves."""
    try:
        user_id = await coordinator.complete_login(code=code)
    except LoginError as e:
        return {"success": False, "error": e.reason, "details": e.message}
    return {"success": True, "user_id": str(user_id)}
