"""Domain events for the StockReservation aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="StockReservation")
class StockReserved:
    """Units of a listing were taken from the ledger and held for a checkout."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    listing_id = Identifier(required=True)
    session_id = Identifier()
    quantity = Integer(required=True)
    reserved_at = DateTime(required=True)


@marketplace.event(part_of="StockReservation")
class StockReleased:
    """A hold was returned to the ledger."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    listing_id = Identifier(required=True)
    session_id = Identifier()
    quantity = Integer(required=True)
    reason = String(max_length=100)
    released_at = DateTime(required=True)


@marketplace.event(part_of="StockReservation")
class StockCommitted:
    """A hold became a permanent deduction because an order was created."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    listing_id = Identifier(required=True)
    session_id = Identifier()
    quantity = Integer(required=True)
    committed_at = DateTime(required=True)
