"""Inventory ledger factory.

Provides get_ledger() / set_ledger() to swap implementations:
- MemoryInventoryLedger for development and testing (default)
- SqlInventoryLedger when ``MARKETPLACE_DATABASE_URL`` is set
"""

import os

from marketplace.inventory.ledger.memory_adapter import MemoryInventoryLedger
from marketplace.inventory.ledger.port import InventoryLedger

_current_ledger: InventoryLedger | None = None


def get_ledger() -> InventoryLedger:
    global _current_ledger
    if _current_ledger is None:
        database_url = os.getenv("MARKETPLACE_DATABASE_URL")
        if database_url:
            from marketplace.inventory.ledger.sql_adapter import SqlInventoryLedger

            _current_ledger = SqlInventoryLedger(database_url)
        else:
            _current_ledger = MemoryInventoryLedger()
    return _current_ledger


def set_ledger(ledger: InventoryLedger) -> None:
    """Override the active ledger (useful for tests)."""
    global _current_ledger
    _current_ledger = ledger


def reset_ledger() -> None:
    global _current_ledger
    _current_ledger = None
