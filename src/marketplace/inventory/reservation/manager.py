"""Stock Reservation Manager: places, releases and commits holds.

``reserve`` is one atomic conditional decrement against the ledger. There is
no availability read before it; the read after a failed decrement only feeds
the error message.

``release`` is idempotent: the ledger settles a hold once, so a cancel
racing an expiry sweep restores stock exactly once and the loser is a no-op.

``commit`` never re-checks availability. The units were already taken when
the hold was placed.
"""

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.errors import InsufficientStockError
from marketplace.inventory.ledger import get_ledger
from marketplace.inventory.ledger.port import HOLD_RELEASED
from marketplace.inventory.reservation.reservation import ReservationStatus, StockReservation

logger = structlog.get_logger(__name__)


class StockReservationManager:
    def __init__(self, ledger=None):
        self._ledger = ledger

    @property
    def ledger(self):
        return self._ledger or get_ledger()

    @property
    def _repo(self):
        return current_domain.repository_for(StockReservation)

    def get(self, reservation_id) -> StockReservation:
        return self._repo.get(reservation_id)

    def _resolve(self, reservation) -> StockReservation:
        if isinstance(reservation, StockReservation):
            return reservation
        return self.get(reservation)

    def reserve(self, listing_id, quantity, session_id=None) -> StockReservation:
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        if not self.ledger.atomic_decrement(listing_id, quantity):
            available = self.ledger.get_availability(listing_id)
            logger.info(
                "Stock reservation refused",
                listing_id=listing_id,
                requested=quantity,
                available=available,
            )
            raise InsufficientStockError(listing_id, requested=quantity, available=available)

        reservation = StockReservation.place(listing_id=listing_id, quantity=quantity, session_id=session_id)
        try:
            self._repo.add(reservation)
        except Exception:
            self.ledger.release_hold(str(reservation.id), listing_id, quantity)
            raise

        logger.info(
            "Stock reserved",
            reservation_id=str(reservation.id),
            listing_id=listing_id,
            quantity=quantity,
            session_id=session_id,
        )
        return reservation

    def reserve_many(self, lines, session_id=None) -> list[StockReservation]:
        """Reserve every ``(listing_id, quantity)`` line or none of them."""
        placed = []
        try:
            for listing_id, quantity in lines:
                placed.append(self.reserve(listing_id, quantity, session_id=session_id))
        except Exception:
            for reservation in placed:
                self.release(reservation, reason="reservation_batch_failed")
            raise
        return placed

    def release(self, reservation, reason="released") -> bool:
        """Return a hold's units to the ledger. True only for the call that restored stock."""
        reservation = self._resolve(reservation)
        if reservation.status == ReservationStatus.COMMITTED.value:
            return False

        restored = self.ledger.release_hold(str(reservation.id), str(reservation.listing_id), reservation.quantity)
        if reservation.is_active and self.ledger.hold_outcome(str(reservation.id)) == HOLD_RELEASED:
            reservation.mark_released(reason)
            self._repo.add(reservation)

        if restored:
            logger.info(
                "Stock reservation released",
                reservation_id=str(reservation.id),
                listing_id=str(reservation.listing_id),
                quantity=reservation.quantity,
                reason=reason,
            )
        return restored

    def active_for_session(self, session_id) -> list[StockReservation]:
        return self._repo._dao.query.filter(session_id=session_id, status=ReservationStatus.ACTIVE.value).all().items

    def release_for_session(self, session_id, reason="released") -> int:
        """Release every active hold of a session. Returns how many restored stock."""
        restored = 0
        for reservation in self.active_for_session(session_id):
            if self.release(reservation, reason=reason):
                restored += 1
        return restored

    def is_committable(self, reservation) -> bool:
        reservation = self._resolve(reservation)
        if reservation.status == ReservationStatus.COMMITTED.value:
            return True
        return reservation.is_active and self.ledger.hold_outcome(str(reservation.id)) is None

    def commit(self, reservation) -> StockReservation:
        reservation = self._resolve(reservation)
        if reservation.status == ReservationStatus.COMMITTED.value:
            return reservation

        if not self.ledger.commit_hold(str(reservation.id)):
            raise ValidationError({"reservation_id": [f"Reservation {reservation.id} was released and cannot be committed"]})

        reservation.mark_committed()
        self._repo.add(reservation)
        logger.info(
            "Stock reservation committed",
            reservation_id=str(reservation.id),
            listing_id=str(reservation.listing_id),
            quantity=reservation.quantity,
        )
        return reservation
