"""StockReservation aggregate: a short-lived hold against a listing's stock.

The ledger owns the stock movement; this aggregate is the durable record of
the hold and its outcome. A reservation starts Active and settles exactly
once, either Released (stock restored) or Committed (stock consumed by an
order).
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace
from marketplace.inventory.reservation.events import StockCommitted, StockReleased, StockReserved


class ReservationStatus(Enum):
    ACTIVE = "active"
    RELEASED = "released"
    COMMITTED = "committed"


@marketplace.aggregate
class StockReservation:
    listing_id = Identifier(required=True)
    session_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    status = String(
        choices=ReservationStatus,
        default=ReservationStatus.ACTIVE.value,
    )
    reserved_at = DateTime()
    released_at = DateTime()
    committed_at = DateTime()
    release_reason = String(max_length=100)

    @classmethod
    def place(cls, listing_id, quantity, session_id=None):
        now = datetime.now(UTC)
        reservation = cls(
            listing_id=listing_id,
            session_id=session_id,
            quantity=quantity,
            reserved_at=now,
        )
        reservation.raise_(
            StockReserved(
                reservation_id=str(reservation.id),
                listing_id=str(listing_id),
                session_id=str(session_id) if session_id else None,
                quantity=quantity,
                reserved_at=now,
            )
        )
        return reservation

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE.value

    def mark_released(self, reason):
        if self.status == ReservationStatus.RELEASED.value:
            return
        if self.status == ReservationStatus.COMMITTED.value:
            raise ValidationError({"status": ["A committed reservation cannot be released"]})

        now = datetime.now(UTC)
        self.status = ReservationStatus.RELEASED.value
        self.released_at = now
        self.release_reason = reason

        self.raise_(
            StockReleased(
                reservation_id=str(self.id),
                listing_id=str(self.listing_id),
                session_id=str(self.session_id) if self.session_id else None,
                quantity=self.quantity,
                reason=reason,
                released_at=now,
            )
        )

    def mark_committed(self):
        if self.status == ReservationStatus.COMMITTED.value:
            return
        if self.status == ReservationStatus.RELEASED.value:
            raise ValidationError({"status": [f"Reservation {self.id} was released and cannot be committed"]})

        now = datetime.now(UTC)
        self.status = ReservationStatus.COMMITTED.value
        self.committed_at = now

        self.raise_(
            StockCommitted(
                reservation_id=str(self.id),
                listing_id=str(self.listing_id),
                session_id=str(self.session_id) if self.session_id else None,
                quantity=self.quantity,
                committed_at=now,
            )
        )
