"""In-process active session registry."""

import threading

from marketplace.checkout.active_sessions.port import ActiveSessionRegistry


class MemoryActiveSessionRegistry(ActiveSessionRegistry):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: dict[str, str] = {}

    def current(self, user_id: str) -> str | None:
        with self._lock:
            return self._active.get(user_id)

    def compare_and_set(self, user_id: str, expected: str | None, session_id: str) -> bool:
        with self._lock:
            if self._active.get(user_id) != expected:
                return False
            self._active[user_id] = session_id
            return True

    def release(self, user_id: str, session_id: str) -> bool:
        with self._lock:
            if self._active.get(user_id) != session_id:
                return False
            del self._active[user_id]
            return True
