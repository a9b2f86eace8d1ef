# orghub/api/token_routes.py
import uuid
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from orghub.api.deps import get_token_store
from orghub.core.db import utcnow
from orghub.core.errors import NotFound, StorageFailed
from orghub.discord_client import DEFAULT_TOKEN_TYPE, TokenGrant, expires_at_from
from orghub.services.token_store import TokenStore

router = APIRouter(prefix="/api/discord-tokens", tags=["discord-tokens"])

# ----- Pydantic schemas -----


class ApiResponse(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


class CreateTokenRequest(BaseModel):
    user_id: uuid.UUID
    access_token: str
    refresh_token: str | None = None
    token_type: str | None = None
    scope: str | None = None
    expires_in: int | None = None     # seconds from now


class UpdateTokenRequest(BaseModel):
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    scope: str | None = None
    expires_at: datetime | None = None


def _ok(data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(ApiResponse(success=True, data=data)))


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(ApiResponse(success=False, error=message)))


# ----- Routes -----


@router.post("")
def upsert_discord_token(payload: CreateTokenRequest, store: TokenStore = Depends(get_token_store)):
    grant = TokenGrant(
        access_token=payload.access_token,
        refresh_token=payload.refresh_token,
        token_type=payload.token_type or DEFAULT_TOKEN_TYPE,
        scope=payload.scope,
        expires_at=expires_at_from(payload.expires_in, utcnow()),
    )
    try:
        token = store.upsert(payload.user_id, grant)
    except NotFound:
        return _error("User not found", 400)
    except StorageFailed as e:
        return _error(f"Failed to save Discord token: {e.message}", 400)
    return _ok(token.public())


@router.get("/user/{user_id}")
def get_discord_token_by_user(user_id: uuid.UUID, store: TokenStore = Depends(get_token_store)):
    try:
        token = store.get_by_user(user_id)
    except NotFound:
        return _error("No Discord token found for user", 404)
    except StorageFailed as e:
        return _error(f"Database error: {e.message}", 500)
    return _ok(token.public())


@router.put("/user/{user_id}")
def update_discord_token(
    user_id: uuid.UUID,
    payload: UpdateTokenRequest,
    store: TokenStore = Depends(get_token_store),
):
    try:
        token = store.update(user_id, **payload.model_dump())
    except NotFound:
        return _error("Discord token not found for user", 404)
    except StorageFailed as e:
        return _error(f"Failed to update Discord token: {e.message}", 500)
    return _ok(token.public())


@router.delete("/user/{user_id}")
def delete_discord_token_by_user(user_id: uuid.UUID, store: TokenStore = Depends(get_token_store)):
    try:
        store.delete_by_user(user_id)
    except NotFound:
        return _error("No Discord token found for user", 404)
    except StorageFailed as e:
        return _error(f"Failed to delete Discord token: {e.message}", 500)
    return _ok()


@router.get("/verify/{user_id}")
def verify_discord_token(user_id: uuid.UUID, store: TokenStore = Depends(get_token_store)):
    try:
        status = store.verify(user_id)
    except StorageFailed as e:
        return _error(f"Database error: {e.message}", 500)
    return _ok(
        {
            "user_id": status.user_id,
            "has_token": status.has_token,
            "is_expired": status.is_expired,
            "expires_at": status.expires_at,
        }
    )


@router.post("/cleanup")
def cleanup_expired_tokens(store: TokenStore = Depends(get_token_store)):
    try:
        deleted_count = store.purge_expired()
    except StorageFailed as e:
        return _error(f"Failed to cleanup expired tokens: {e.message}", 500)
    return _ok({"deleted_count": deleted_count, "message": f"Cleaned up {deleted_count} expired tokens"})
