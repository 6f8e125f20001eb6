"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    """A seller group of a completed checkout became an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    checkout_session_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    total_amount = Float(required=True)
    currency = String(required=True)
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    note = String(max_length=500)
    updated_by = Identifier()
    changed_at = DateTime(required=True)
