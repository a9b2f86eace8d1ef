# orghub/models/__init__.py
from orghub.models.user import User
from orghub.models.discord_token import DiscordToken

__all__ = ["User", "DiscordToken"]
