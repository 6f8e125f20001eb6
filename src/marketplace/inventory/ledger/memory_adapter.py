"""In-process inventory ledger for development and tests.

A single lock guards the counters and the settlement table, which makes
each operation the in-memory equivalent of one conditional UPDATE.
"""

import threading

from marketplace.inventory.ledger.port import HOLD_COMMITTED, HOLD_RELEASED, InventoryLedger


class MemoryInventoryLedger(InventoryLedger):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._available: dict[str, int] = {}
        self._settled: dict[str, str] = {}

    def get_availability(self, listing_id: str) -> int:
        with self._lock:
            return self._available.get(listing_id, 0)

    def atomic_decrement(self, listing_id: str, quantity: int) -> bool:
        with self._lock:
            available = self._available.get(listing_id, 0)
            if available < quantity:
                return False
            self._available[listing_id] = available - quantity
            return True

    def atomic_increment(self, listing_id: str, quantity: int) -> None:
        with self._lock:
            self._available[listing_id] = self._available.get(listing_id, 0) + quantity

    def release_hold(self, reservation_id: str, listing_id: str, quantity: int) -> bool:
        with self._lock:
            if reservation_id in self._settled:
                return False
            self._settled[reservation_id] = HOLD_RELEASED
            self._available[listing_id] = self._available.get(listing_id, 0) + quantity
            return True

    def commit_hold(self, reservation_id: str) -> bool:
        with self._lock:
            if self._settled.get(reservation_id) == HOLD_RELEASED:
                return False
            self._settled[reservation_id] = HOLD_COMMITTED
            return True

    def hold_outcome(self, reservation_id: str) -> str | None:
        with self._lock:
            return self._settled.get(reservation_id)

    def set_stock(self, listing_id: str, quantity: int) -> None:
        if quantity < 0:
            raise ValueError("Stock cannot be negative")
        with self._lock:
            self._available[listing_id] = quantity
