"""Active checkout session registry port.

Holds at most one active session id per user. Claims are compare-and-set,
so two concurrent ``create`` calls for the same user cannot both end up
active: the loser observes the winner and supersedes it explicitly.
"""

from abc import ABC, abstractmethod


class ActiveSessionRegistry(ABC):
    @abstractmethod
    def current(self, user_id: str) -> str | None:
        """The user's active session id, if any."""
        ...

    @abstractmethod
    def compare_and_set(self, user_id: str, expected: str | None, session_id: str) -> bool:
        """Point ``user_id`` at ``session_id`` only if it currently points at ``expected``."""
        ...

    @abstractmethod
    def release(self, user_id: str, session_id: str) -> bool:
        """Drop the claim only if it still belongs to ``session_id``."""
        ...
