# orghub/core/config.py
import os
import urllib.parse
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

load_dotenv()  # load from .env


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name, "") or "").strip() or default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name).lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


def _parse_csv(value: str) -> List[str]:
    items = [x.strip() for x in (value or "").split(",")]
    return [x for x in items if x]


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at startup and handed to each component."""

    discord_client_id: str = ""
    discord_client_secret: str = ""
    discord_redirect_uri: str = "http://localhost:8081/auth/discord/callback"
    discord_oauth_scopes: str = "identify"

    # Discord endpoints
    discord_authorize_url: str = "https://discord.com/api/oauth2/authorize"
    discord_token_url: str = "https://discord.com/api/oauth2/token"
    discord_user_api_url: str = "https://discord.com/api/users/@me"
    discord_cdn_base_url: str = "https://cdn.discordapp.com"

    database_url: str = "sqlite:///./orghub.db"
    frontend_url: str = "http://localhost:8081"
    allowed_origins: List[str] = field(default_factory=list)

    http_timeout_seconds: float = 10.0
    enforce_state: bool = True
    state_ttl_seconds: int = 600

    environment: str = "development"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8080

    # URL helpers

    def oauth_success_redirect(self, user_id: str) -> str:
        query = urllib.parse.urlencode({"auth": "success", "user_id": user_id})
        return f"{self.frontend_url.rstrip('/')}/?{query}"

    def oauth_error_redirect(self, reason: str) -> str:
        query = urllib.parse.urlencode({"error": reason})
        return f"{self.frontend_url.rstrip('/')}/?{query}"

    def authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.discord_client_id,
            "redirect_uri": self.discord_redirect_uri,
            "response_type": "code",
            "scope": self.discord_oauth_scopes,
            "state": state,
        }
        return self.discord_authorize_url + "?" + urllib.parse.urlencode(params)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty when the settings are usable)."""
        errors = []
        if not self.discord_client_id:
            errors.append("DISCORD_CLIENT_ID is required")
        if not self.discord_client_secret:
            errors.append("DISCORD_CLIENT_SECRET is required")
        if self.is_production and self.database_url.startswith("sqlite"):
            errors.append("DATABASE_URL must point at a server database in production")
        if self.http_timeout_seconds <= 0:
            errors.append("HTTP_TIMEOUT_SECONDS must be positive")
        return errors

    def summary(self) -> str:
        # Strip credentials from the database URL before it reaches a log line.
        db = self.database_url.split("@")[-1] if "@" in self.database_url else self.database_url
        return (
            f"environment={self.environment} database={db} frontend={self.frontend_url} "
            f"client_id={self.discord_client_id or '<unset>'} redirect={self.discord_redirect_uri} "
            f"enforce_state={self.enforce_state}"
        )


def _parse_float(value: str, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """
    Build Settings from environment variables (and a local .env file).

    Cached so that the whole process shares one immutable instance; tests call
    `load_settings.cache_clear()` after changing the environment.
    """
    defaults = Settings()
    ttl = int(_parse_float(_env("OAUTH_STATE_TTL_SECONDS"), defaults.state_ttl_seconds))
    if ttl < 60:
        ttl = 60

    return Settings(
        discord_client_id=_env("DISCORD_CLIENT_ID"),
        discord_client_secret=_env("DISCORD_CLIENT_SECRET"),
        discord_redirect_uri=_env("DISCORD_REDIRECT_URI", defaults.discord_redirect_uri),
        discord_oauth_scopes=_env("DISCORD_OAUTH_SCOPES", defaults.discord_oauth_scopes),
        discord_authorize_url=_env("DISCORD_AUTHORIZE_URL", defaults.discord_authorize_url),
        discord_token_url=_env("DISCORD_TOKEN_URL", defaults.discord_token_url),
        discord_user_api_url=_env("DISCORD_USER_API_URL", defaults.discord_user_api_url),
        discord_cdn_base_url=_env("DISCORD_CDN_BASE_URL", defaults.discord_cdn_base_url),
        database_url=_env("DATABASE_URL", defaults.database_url),
        frontend_url=_env("FRONTEND_URL", defaults.frontend_url),
        allowed_origins=_parse_csv(
            _env("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000,http://localhost:8081")
        ),
        http_timeout_seconds=_parse_float(_env("HTTP_TIMEOUT_SECONDS"), defaults.http_timeout_seconds),
        enforce_state=_env_bool("OAUTH_ENFORCE_STATE", True),
        state_ttl_seconds=ttl,
        environment=_env("APP_ENV", defaults.environment),
        log_level=_env("LOG_LEVEL", defaults.log_level).upper(),
        host=_env("HOST", defaults.host),
        port=int(_parse_float(_env("PORT"), defaults.port)),
    )
