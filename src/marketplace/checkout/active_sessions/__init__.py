"""Active session registry factory.

In-memory by default; SQL-backed when ``MARKETPLACE_DATABASE_URL`` is set.
"""

import os

from marketplace.checkout.active_sessions.memory_adapter import MemoryActiveSessionRegistry
from marketplace.checkout.active_sessions.port import ActiveSessionRegistry

_current_registry: ActiveSessionRegistry | None = None


def get_registry() -> ActiveSessionRegistry:
    global _current_registry
    if _current_registry is None:
        database_url = os.getenv("MARKETPLACE_DATABASE_URL")
        if database_url:
            from marketplace.checkout.active_sessions.sql_adapter import SqlActiveSessionRegistry

            _current_registry = SqlActiveSessionRegistry(database_url)
        else:
            _current_registry = MemoryActiveSessionRegistry()
    return _current_registry


def set_registry(registry: ActiveSessionRegistry) -> None:
    global _current_registry
    _current_registry = registry


def reset_registry() -> None:
    global _current_registry
    _current_registry = None
