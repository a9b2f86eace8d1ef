# orghub/core/errors.py
"""
Failure taxonomy for the Discord login pipeline.

Every stage of the pipeline raises a subclass of `LoginError`; callers branch on
`kind` (or the class) instead of matching message text. `reason` is the coarse
code that is safe to hand to the browser; `detail` holds diagnostics such as a
raw provider response body and is only ever logged.
"""
from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    DENIED = "denied"
    INVALID_CALLBACK = "invalid_callback"
    EXCHANGE_FAILED = "exchange_failed"
    PROFILE_FETCH_FAILED = "profile_fetch_failed"
    STORAGE_FAILED = "storage_failed"
    NOT_FOUND = "not_found"
    # Expired tokens are reported as absence; no exception carries this kind.
    EXPIRED = "expired"


class LoginError(Exception):
    kind: FailureKind
    reason: str

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.status_code = status_code
        self.detail = detail

    def describe(self) -> str:
        """One-line diagnostic for logs (may include provider bodies)."""
        parts = [f"kind={self.kind.value}"]
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        parts.append(f"message={self.message!r}")
        if self.detail:
            parts.append(f"detail={self.detail!r}")
        if self.__cause__ is not None:
            parts.append(f"cause={type(self.__cause__).__name__}: {self.__cause__}")
        return " ".join(parts)


class Denied(LoginError):
    kind = FailureKind.DENIED
    reason = "oauth_failed"


class InvalidCallback(LoginError):
    kind = FailureKind.INVALID_CALLBACK
    reason = "missing_code"


class InvalidState(InvalidCallback):
    reason = "invalid_state"


class ExchangeFailed(LoginError):
    kind = FailureKind.EXCHANGE_FAILED
    reason = "token_exchange_failed"


class ProfileFetchFailed(LoginError):
    kind = FailureKind.PROFILE_FETCH_FAILED
    reason = "profile_fetch_failed"


class StorageFailed(LoginError):
    kind = FailureKind.STORAGE_FAILED
    reason = "storage_failed"


class NotFound(LoginError):
    kind = FailureKind.NOT_FOUND
    reason = "not_found"
