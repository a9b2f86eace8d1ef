# orghub/models/user.py
import uuid

from sqlalchemy import Column, String, Text, Uuid

from orghub.core.db import Base, UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    discord_id = Column(String(255), unique=True, index=True, nullable=False)
    display_name = Column(String(255), nullable=False, index=True)
    avatar_url = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)                 # user-authored, never touched by Discord sync

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)
