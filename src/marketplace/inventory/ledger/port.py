"""Inventory ledger port (abstract interface).

The ledger is the authoritative per-listing stock counter. Every write to a
listing's availability goes through a single atomic statement: a
conditional decrement that only succeeds while enough stock remains, or an
increment. Nothing in the marketplace reads availability and then writes it
back.

Holds are settled at most once. ``release_hold`` and ``commit_hold`` record
the outcome of a reservation id atomically with the stock movement, so a
cancel racing an expiry sweep restores stock exactly once.
"""

from abc import ABC, abstractmethod

HOLD_RELEASED = "released"
HOLD_COMMITTED = "committed"


class InventoryLedger(ABC):
    """Abstract inventory ledger interface."""

    @abstractmethod
    def get_availability(self, listing_id: str) -> int:
        """Units currently available. Unknown listings have none."""
        ...

    @abstractmethod
    def atomic_decrement(self, listing_id: str, quantity: int) -> bool:
        """Take ``quantity`` units if at least that many are available."""
        ...

    @abstractmethod
    def atomic_increment(self, listing_id: str, quantity: int) -> None:
        """Return ``quantity`` units to the listing."""
        ...

    @abstractmethod
    def release_hold(self, reservation_id: str, listing_id: str, quantity: int) -> bool:
        """Settle a hold as released and restore its stock.

        Returns False without touching stock when the hold was already settled.
        """
        ...

    @abstractmethod
    def commit_hold(self, reservation_id: str) -> bool:
        """Settle a hold as committed. The stock stays deducted.

        Returns False when the hold was already released. Committing twice is
        allowed and returns True.
        """
        ...

    @abstractmethod
    def hold_outcome(self, reservation_id: str) -> str | None:
        """``HOLD_RELEASED``, ``HOLD_COMMITTED`` or None while unsettled."""
        ...

    @abstractmethod
    def set_stock(self, listing_id: str, quantity: int) -> None:
        """Overwrite a listing's availability (seeding and restocking)."""
        ...
