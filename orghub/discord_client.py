# orghub/discord_client.py
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx

from orghub.core.config import Settings
from orghub.core.db import utcnow
from orghub.core.errors import ExchangeFailed, InvalidCallback, ProfileFetchFailed

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TYPE = "Bearer"
UNKNOWN_USERNAME = "Unknown User"


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = DEFAULT_TOKEN_TYPE
    scope: Optional[str] = None
    expires_at: Optional[datetime] = None

    def __repr__(self) -> str:
        # keep secrets out of logs and tracebacks
        return f"TokenGrant(token_type={self.token_type!r}, scope={self.scope!r}, expires_at={self.expires_at!r})"


@dataclass(frozen=True)
class Profile:
    discord_id: str
    display_name: str
    avatar_url: Optional[str] = None


def expires_at_from(expires_in, now: datetime) -> Optional[datetime]:
    """Turn a relative `expires_in` (seconds) into an absolute timestamp."""
    if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
        return None
    return now + timedelta(seconds=int(expires_in))


def _optional_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) and value else None


class _DiscordEndpoint:
    """Shared plumbing: reuse a caller-supplied AsyncClient or open a short-lived one."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.client = client
        self.timeout = httpx.Timeout(settings.http_timeout_seconds)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        kwargs.setdefault("timeout", self.timeout)
        if self.client:
            return await self.client.request(method, url, **kwargs)
        async with httpx.AsyncClient(headers={"Accept": "application/json"}) as client:
            return await client.request(method, url, **kwargs)


class TokenExchanger(_DiscordEndpoint):
    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(settings, client)
        self.clock = clock

    async def exchange(self, code: str) -> TokenGrant:
        """Trade an authorization code for a token grant at Discord's token endpoint.

        Raises ExchangeFailed on transport errors, non-2xx responses, unparseable
        bodies, or a body without `access_token`. Nothing is retried here.
        """
        if not code:
            raise InvalidCallback("Authorization code is empty", stage="exchange")

        data = {
            "client_id": self.settings.discord_client_id,
            "client_secret": self.settings.discord_client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.discord_redirect_uri,
        }
        try:
            resp = await self._request(
                "POST",
                self.settings.discord_token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise ExchangeFailed(f"Token request failed: {type(e).__name__}", stage="exchange") from e

        if not resp.is_success:
            raise ExchangeFailed(
                f"Token endpoint returned HTTP {resp.status_code}",
                stage="exchange",
                status_code=resp.status_code,
                detail=resp.text,
            )

        received_at = self.clock()
        try:
            token_data = resp.json()
        except ValueError as e:
            raise ExchangeFailed(
                "Token response is not valid JSON",
                stage="exchange",
                status_code=resp.status_code,
                detail=resp.text,
            ) from e
        if not isinstance(token_data, dict):
            raise ExchangeFailed("Token response is not a JSON object", stage="exchange", detail=resp.text)

        access_token = _optional_str(token_data, "access_token")
        if not access_token:
            raise ExchangeFailed("No access token in response", stage="exchange", status_code=resp.status_code)

        return TokenGrant(
            access_token=access_token,
            refresh_token=_optional_str(token_data, "refresh_token"),
            token_type=_optional_str(token_data, "token_type") or DEFAULT_TOKEN_TYPE,
            scope=_optional_str(token_data, "scope"),
            expires_at=expires_at_from(token_data.get("expires_in"), received_at),
        )


class ProfileFetcher(_DiscordEndpoint):
    def avatar_url(self, discord_id: str, avatar_hash: Optional[str]) -> Optional[str]:
        if not avatar_hash:
            return None
        base = self.settings.discord_cdn_base_url.rstrip("/")
        return f"{base}/avatars/{discord_id}/{avatar_hash}.png"

    async def fetch_profile(self, access_token: str) -> Profile:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        try:
            resp = await self._request("GET", self.settings.discord_user_api_url, headers=headers)
        except httpx.HTTPError as e:
            raise ProfileFetchFailed(f"Failed to get user info: {type(e).__name__}", stage="profile") from e

        if not resp.is_success:
            raise ProfileFetchFailed(
                f"Failed to get user info: HTTP {resp.status_code}",
                stage="profile",
                status_code=resp.status_code,
                detail=resp.text,
            )

        try:
            user_info = resp.json()
        except ValueError as e:
            raise ProfileFetchFailed("Failed to parse user info", stage="profile", detail=resp.text) from e
        if not isinstance(user_info, dict):
            raise ProfileFetchFailed("User info is not a JSON object", stage="profile", detail=resp.text)

        raw_id = user_info.get("id")
        if isinstance(raw_id, bool) or not isinstance(raw_id, (str, int)) or raw_id == "":
            raise ProfileFetchFailed("No Discord ID in user info", stage="profile")
        discord_id = str(raw_id)

        # global_name is the user-chosen display name; username is the fallback
        display_name = (
            _optional_str(user_info, "global_name")
            or _optional_str(user_info, "username")
            or UNKNOWN_USERNAME
        )

        return Profile(
            discord_id=discord_id,
            display_name=display_name,
            avatar_url=self.avatar_url(discord_id, _optional_str(user_info, "avatar")),
        )
