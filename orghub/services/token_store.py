# orghub/services/token_store.py
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from orghub.core.db import upsert_insert, utcnow
from orghub.core.errors import NotFound, StorageFailed
from orghub.discord_client import TokenGrant
from orghub.models import DiscordToken

logger = logging.getLogger(__name__)

_UPDATABLE = ("access_token", "refresh_token", "token_type", "scope", "expires_at")


@dataclass(frozen=True)
class StoredToken:
    id: uuid.UUID
    user_id: uuid.UUID
    access_token: str
    refresh_token: Optional[str]
    token_type: str
    scope: Optional[str]
    expires_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row) -> "StoredToken":
        return cls(**{name: getattr(row, name) for name in cls.__dataclass_fields__})

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def public(self) -> dict:
        """Everything except the secret token values."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "token_type": self.token_type,
            "scope": self.scope,
            "expires_at": self.expires_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"StoredToken(id={self.id}, user_id={self.user_id}, expires_at={self.expires_at!r})"


@dataclass(frozen=True)
class TokenStatus:
    user_id: uuid.UUID
    has_token: bool
    is_expired: Optional[bool] = None
    expires_at: Optional[datetime] = None


def _is_foreign_key_violation(error: IntegrityError) -> bool:
    return "foreign key" in str(error.orig).lower()


class TokenStore:
    """One Discord token per user. Expiry is checked when a token is read, never in the background."""

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    def upsert(self, user_id: uuid.UUID, grant: TokenGrant) -> StoredToken:
        """Insert the user's token or overwrite the existing one in a single statement."""
        now = self.clock()
        columns = DiscordToken.__table__.c
        with self.session_factory() as db:
            try:
                insert = upsert_insert(db)
                if insert is None:
                    token = self._replace(db, user_id, grant, now)
                    db.commit()
                    return StoredToken.from_row(token)

                stmt = insert(DiscordToken).values(
                    id=uuid.uuid4(),
                    user_id=user_id,
                    access_token=grant.access_token,
                    refresh_token=grant.refresh_token,
                    token_type=grant.token_type,
                    scope=grant.scope,
                    expires_at=grant.expires_at,
                    created_at=now,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[DiscordToken.user_id],
                    set_={name: stmt.excluded[name] for name in _UPDATABLE + ("updated_at",)},
                ).returning(*columns)
                row = db.execute(stmt).one()
                db.commit()
            except IntegrityError as e:
                db.rollback()
                if _is_foreign_key_violation(e):
                    raise NotFound(f"User {user_id} not found", stage="persist_token") from e
                raise StorageFailed("Failed to save Discord token", stage="persist_token") from e
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageFailed("Failed to save Discord token", stage="persist_token") from e
        return StoredToken.from_row(row)

    def _replace(self, db, user_id: uuid.UUID, grant: TokenGrant, now: datetime) -> DiscordToken:
        token = db.execute(select(DiscordToken).where(DiscordToken.user_id == user_id)).scalar_one_or_none()
        if token is None:
            token = DiscordToken(id=uuid.uuid4(), user_id=user_id, created_at=now)
            db.add(token)
        for name in _UPDATABLE:
            setattr(token, name, getattr(grant, name))
        token.updated_at = now
        db.flush()
        return token

    def find_valid(self, access_token: str) -> Optional[StoredToken]:
        """Look up a token by its raw value; expired and absent look the same.

        Token values are not unique across users, so the most recently written
        row wins.
        """
        try:
            with self.session_factory() as db:
                token = db.execute(
                    select(DiscordToken)
                    .where(DiscordToken.access_token == access_token)
                    .order_by(DiscordToken.updated_at.desc())
                ).scalars().first()
        except SQLAlchemyError as e:
            raise StorageFailed("Database error", stage="find_token") from e
        if token is None:
            return None
        stored = StoredToken.from_row(token)
        if stored.is_expired(self.clock()):
            return None
        return stored

    def get_by_user(self, user_id: uuid.UUID) -> StoredToken:
        try:
            with self.session_factory() as db:
                token = db.execute(
                    select(DiscordToken).where(DiscordToken.user_id == user_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageFailed("Database error", stage="get_token") from e
        if token is None:
            raise NotFound("No Discord token found for user", stage="get_token")
        return StoredToken.from_row(token)

    def update(self, user_id: uuid.UUID, /, **changes) -> StoredToken:
        """Partial update: only fields passed with a non-None value change."""
        unknown = set(changes) - set(_UPDATABLE)
        if unknown:
            raise ValueError(f"Cannot update token fields: {sorted(unknown)}")

        values = {name: value for name, value in changes.items() if value is not None}
        values["updated_at"] = self.clock()
        with self.session_factory() as db:
            try:
                result = db.execute(
                    update(DiscordToken)
                    .where(DiscordToken.user_id == user_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    db.rollback()
                    raise NotFound("Discord token not found for user", stage="update_token")
                db.commit()
                token = db.execute(
                    select(DiscordToken).where(DiscordToken.user_id == user_id)
                ).scalar_one()
                return StoredToken.from_row(token)
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageFailed("Failed to update Discord token", stage="update_token") from e

    def delete_by_user(self, user_id: uuid.UUID) -> None:
        with self.session_factory() as db:
            try:
                result = db.execute(delete(DiscordToken).where(DiscordToken.user_id == user_id))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageFailed("Failed to delete Discord token", stage="delete_token") from e
        if result.rowcount == 0:
            raise NotFound("No Discord token found for user", stage="delete_token")

    def delete_by_access_token(self, access_token: str) -> bool:
        with self.session_factory() as db:
            try:
                result = db.execute(delete(DiscordToken).where(DiscordToken.access_token == access_token))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageFailed("Failed to delete Discord token", stage="delete_token") from e
        return result.rowcount > 0

    def verify(self, user_id: uuid.UUID) -> TokenStatus:
        try:
            token = self.get_by_user(user_id)
        except NotFound:
            return TokenStatus(user_id=user_id, has_token=False)
        return TokenStatus(
            user_id=user_id,
            has_token=True,
            is_expired=token.is_expired(self.clock()),
            expires_at=token.expires_at,
        )

    def purge_expired(self) -> int:
        """Delete every token whose expiry has passed; returns the number removed."""
        now = self.clock()
        with self.session_factory() as db:
            try:
                result = db.execute(
                    delete(DiscordToken).where(
                        DiscordToken.expires_at.is_not(None),
                        DiscordToken.expires_at < now,
                    )
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageFailed("Failed to cleanup expired tokens", stage="purge") from e
        logger.info("Cleaned up %d expired Discord tokens", result.rowcount)
        return result.rowcount
