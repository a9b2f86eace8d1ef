# orghub/services/state_store.py
import secrets
import threading
import time
from typing import Callable, Dict, Optional


class OAuthStateStore:
    """
    Single-use CSRF `state` values minted at /login and consumed at /callback.

    Kept in process memory, so it only binds logins that start and finish on the
    same worker.
    """

    def __init__(self, ttl_seconds: int = 600, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._issued: Dict[str, float] = {}
        self._lock = threading.Lock()

    def issue(self) -> str:
        state = secrets.token_urlsafe(16)
        with self._lock:
            self._prune()
            self._issued[state] = self.clock() + self.ttl_seconds
        return state

    def consume(self, state: Optional[str]) -> bool:
        if not state:
            return False
        with self._lock:
            deadline = self._issued.pop(state, None)
        return deadline is not None and deadline > self.clock()

    def _prune(self) -> None:
        now = self.clock()
        for key in [k for k, deadline in self._issued.items() if deadline <= now]:
            del self._issued[key]

    def __len__(self) -> int:
        return len(self._issued)
