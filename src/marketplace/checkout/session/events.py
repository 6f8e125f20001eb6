"""Domain events for the CheckoutSession aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="CheckoutSession")
class CheckoutSessionCreated:
    """A buyer started checkout; stock is held until ``expires_at``."""

    __version__ = 1

    session_id = Identifier(required=True)
    user_id = Identifier(required=True)
    session_type = String(required=True)
    item_count = Integer(required=True)
    seller_count = Integer(required=True)
    total_amount = Float(required=True)
    currency = String(required=True)
    expires_at = DateTime(required=True)
    created_at = DateTime(required=True)


@marketplace.event(part_of="CheckoutSession")
class CheckoutSessionUpdated:
    """Delivery, address, payment or quantities changed and the session was repriced."""

    __version__ = 1

    session_id = Identifier(required=True)
    changed_fields = Text(required=True)  # JSON list of field names
    total_amount = Float(required=True)
    updated_at = DateTime(required=True)


@marketplace.event(part_of="CheckoutSession")
class PaymentIntentRecorded:
    __version__ = 1

    session_id = Identifier(required=True)
    payment_intent_ref = String(required=True)
    recorded_at = DateTime(required=True)


@marketplace.event(part_of="CheckoutSession")
class CheckoutSessionCompleted:
    """Orders exist for every seller group of the session."""

    __version__ = 1

    session_id = Identifier(required=True)
    user_id = Identifier(required=True)
    order_ids = Text(required=True)  # JSON list
    completed_at = DateTime(required=True)


@marketplace.event(part_of="CheckoutSession")
class CheckoutSessionCancelled:
    __version__ = 1

    session_id = Identifier(required=True)
    user_id = Identifier(required=True)
    reason = String(max_length=100)
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="CheckoutSession")
class CheckoutSessionExpired:
    __version__ = 1

    session_id = Identifier(required=True)
    user_id = Identifier(required=True)
    expires_at = DateTime(required=True)
    expired_at = DateTime(required=True)
