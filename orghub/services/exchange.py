# orghub/services/exchange.py
import asyncio
import logging
import uuid
from enum import Enum
from typing import Optional

from orghub.core.errors import Denied, InvalidCallback, LoginError
from orghub.discord_client import ProfileFetcher, TokenExchanger
from orghub.services.token_store import TokenStore
from orghub.services.user_reconciler import UserReconciler

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    RECEIVED_CALLBACK = "received_callback"
    CODE_VALIDATED = "code_validated"
    TOKEN_EXCHANGED = "token_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    USER_RECONCILED = "user_reconciled"
    TOKEN_PERSISTED = "token_persisted"
    DONE = "done"


class ExchangeCoordinator:
    """
    Runs one Discord login end to end:
    code -> token grant -> profile -> local user -> stored token -> user id.

    Stages run strictly in order and the first failure aborts the rest; there
    are no retries. Database work runs in a worker thread so the event loop is
    never blocked, and no session is held across an HTTP call.
    """

    def __init__(
        self,
        exchanger: TokenExchanger,
        profiles: ProfileFetcher,
        reconciler: UserReconciler,
        tokens: TokenStore,
    ):
        self.exchanger = exchanger
        self.profiles = profiles
        self.reconciler = reconciler
        self.tokens = tokens

    async def complete_login(self, code: Optional[str] = None, error: Optional[str] = None) -> uuid.UUID:
        stage = Stage.RECEIVED_CALLBACK
        try:
            if error:
                raise Denied(f"Discord OAuth error: {error}", stage=stage.value, detail=error)
            if not code:
                raise InvalidCallback("Callback carried neither code nor error", stage=stage.value)
            stage = self._advance(Stage.CODE_VALIDATED)

            grant = await self.exchanger.exchange(code)
            stage = self._advance(Stage.TOKEN_EXCHANGED)

            profile = await self.profiles.fetch_profile(grant.access_token)
            stage = self._advance(Stage.PROFILE_FETCHED)

            user_id = await asyncio.to_thread(self.reconciler.reconcile, profile)
            stage = self._advance(Stage.USER_RECONCILED)

            await asyncio.to_thread(self.tokens.upsert, user_id, grant)
            stage = self._advance(Stage.TOKEN_PERSISTED)
        except LoginError as e:
            if e.stage is None:
                e.stage = stage.value
            logger.warning("Discord login failed after %s: %s", stage.value, e.describe())
            raise

        self._advance(Stage.DONE)
        logger.info("Successfully saved user and token for user_id: %s", user_id)
        return user_id

    @staticmethod
    def _advance(stage: Stage) -> Stage:
        logger.debug("Discord login stage: %s", stage.value)
        return stage
