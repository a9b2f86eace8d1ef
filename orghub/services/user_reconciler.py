# orghub/services/user_reconciler.py
import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from orghub.core.db import upsert_insert, utcnow
from orghub.core.errors import NotFound, StorageFailed
from orghub.discord_client import Profile
from orghub.models import User

logger = logging.getLogger(__name__)


class UserReconciler:
    """Maps a Discord profile onto exactly one local User row."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def reconcile(self, profile: Profile) -> uuid.UUID:
        """
        Find-or-create the user for `profile.discord_id` and return its id.

        Display name and avatar are refreshed from the profile; bio is never
        written. A uniqueness violation means a concurrent login created the row
        first, so the existing row is re-read instead of failing.
        """
        with self.session_factory() as db:
            try:
                user_id = self._write(db, profile)
                db.commit()
                return user_id
            except IntegrityError as e:
                db.rollback()
                logger.info("Lost create race for discord_id=%s; re-reading", profile.discord_id)
                return self._recover(db, profile, e)
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageFailed("Failed to save user", stage="reconcile") from e

    def _write(self, db: Session, profile: Profile) -> uuid.UUID:
        insert = upsert_insert(db)
        if insert is None:
            return self._find_then_write(db, profile)

        now = utcnow()
        stmt = insert(User).values(
            id=uuid.uuid4(),
            discord_id=profile.discord_id,
            display_name=profile.display_name,
            avatar_url=profile.avatar_url,
            bio=None,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[User.discord_id],
            set_={
                "display_name": stmt.excluded.display_name,
                "avatar_url": stmt.excluded.avatar_url,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(User.id)
        return db.execute(stmt).scalar_one()

    def _find_then_write(self, db: Session, profile: Profile) -> uuid.UUID:
        # Backends without ON CONFLICT: racy, the unique index on discord_id backs it up.
        user = self._lookup(db, profile.discord_id)
        if user:
            self._apply(user, profile)
        else:
            user = User(
                id=uuid.uuid4(),
                discord_id=profile.discord_id,
                display_name=profile.display_name,
                avatar_url=profile.avatar_url,
                bio=None,
            )
            db.add(user)
        db.flush()
        return user.id

    def _recover(self, db: Session, profile: Profile, error: IntegrityError) -> uuid.UUID:
        try:
            user = self._lookup(db, profile.discord_id)
            if user is None:
                raise StorageFailed(
                    "Unique constraint violated but no user found on re-read",
                    stage="reconcile",
                ) from error
            self._apply(user, profile)
            db.commit()
            return user.id
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageFailed("Failed to save user", stage="reconcile") from e

    @staticmethod
    def _apply(user: User, profile: Profile) -> None:
        user.display_name = profile.display_name
        user.avatar_url = profile.avatar_url

    @staticmethod
    def _lookup(db: Session, discord_id: str) -> Optional[User]:
        return db.execute(select(User).where(User.discord_id == discord_id)).scalar_one_or_none()

    # lookups used by the API layer

    def get_by_discord_id(self, discord_id: str) -> Optional[User]:
        try:
            with self.session_factory() as db:
                return self._lookup(db, discord_id)
        except SQLAlchemyError as e:
            raise StorageFailed("Database error", stage="lookup") from e

    def get(self, user_id: uuid.UUID) -> User:
        try:
            with self.session_factory() as db:
                user = db.get(User, user_id)
        except SQLAlchemyError as e:
            raise StorageFailed("Database error", stage="lookup") from e
        if user is None:
            raise NotFound(f"User {user_id} not found", stage="lookup")
        return user
