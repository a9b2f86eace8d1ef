# orghub/models/discord_token.py
import uuid

from sqlalchemy import Column, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import backref, relationship

from orghub.core.db import Base, UTCDateTime, utcnow


class DiscordToken(Base):
    __tablename__ = "discord_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # unique: a user holds at most one token; re-auth replaces it
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True, nullable=False)
    access_token = Column(Text, nullable=False, index=True)
    refresh_token = Column(Text, nullable=True)
    token_type = Column(String(50), nullable=False, default="Bearer")   # e.g. "Bearer"
    scope = Column(Text, nullable=True)                                 # e.g. "identify email"
    expires_at = Column(UTCDateTime, nullable=True, index=True)         # NULL for non-expiring tokens

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, nullable=False)   # set by TokenStore on every write

    user = relationship("User", backref=backref("discord_tokens", passive_deletes=True))
