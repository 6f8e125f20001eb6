"""Checkout session creation: command and handler.

Nothing is written until the new session is known to fit: listings are
snapshotted and priced, and stock is checked counting the units the buyer's
previous session holds as available. Only then is the previous session
retired and its stock handed back to the ledger for the new holds. A failed
reservation releases the ones already placed for this session.
"""

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.checkout.active_sessions import get_registry
from marketplace.checkout.pricing.policy import DeliveryMethod, PaymentMethod, get_policy
from marketplace.checkout.session.orchestrator import (
    active_session_for,
    build_seller_groups,
    claim_active_slot,
    confirm_availability,
    held_quantities,
    parse_item_lines,
    price_items,
    retire,
    snapshot_items,
)
from marketplace.checkout.session.session import CheckoutSession, SessionPricing
from marketplace.domain import marketplace
from marketplace.inventory.reservation.manager import StockReservationManager

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="CheckoutSession")
class CreateCheckoutSession:
    """Start checkout for a cart or a single direct purchase."""

    user_id = Identifier(required=True)
    session_type = String(max_length=20, default="cart")
    items = Text(required=True)  # JSON: list of {listing_id, quantity}
    delivery_method = String(max_length=50)
    payment_method = String(max_length=50)
    expires_at = DateTime()  # Optional override of the default TTL


@marketplace.command_handler(part_of=CheckoutSession)
class CreateCheckoutSessionHandler:
    @handle(CreateCheckoutSession)
    def create_checkout_session(self, command):
        policy = get_policy()
        user_id = str(command.user_id)
        delivery_method = command.delivery_method or DeliveryMethod.DELIVERY.value
        payment_method = command.payment_method or PaymentMethod.COD.value
        lines = parse_item_lines(command.items)

        items = snapshot_items(lines)
        group_pricing, aggregate = price_items(items, delivery_method, payment_method)
        session = CheckoutSession.create(
            user_id=user_id,
            session_type=command.session_type,
            items=items,
            seller_groups=build_seller_groups(items, group_pricing),
            pricing=SessionPricing(**aggregate.to_dict()),
            delivery_method=delivery_method,
            payment_method=payment_method,
            expires_at=command.expires_at,
            ttl_minutes=policy.session_ttl_minutes,
        )

        previous = active_session_for(user_id)
        confirm_availability(session.items, held=held_quantities(previous))
        if previous is not None:
            retire(previous)

        manager = StockReservationManager()
        reservations = manager.reserve_many(
            [(str(item.listing_id), item.quantity) for item in items if item.listing_type == "product"],
            session_id=str(session.id),
        )

        claimed = False
        try:
            for reservation in reservations:
                session.attach_reservation(
                    reservation_id=str(reservation.id),
                    listing_id=str(reservation.listing_id),
                    quantity=reservation.quantity,
                    reserved_at=reservation.reserved_at,
                )
            claim_active_slot(user_id, str(session.id))
            claimed = True
            current_domain.repository_for(CheckoutSession).add(session)
        except Exception:
            for reservation in reservations:
                manager.release(reservation, reason="checkout_creation_failed")
            if claimed:
                get_registry().release(user_id, str(session.id))
            raise

        logger.info(
            "Checkout session created",
            session_id=str(session.id),
            user_id=user_id,
            seller_count=len(session.seller_groups),
            total_amount=session.pricing.total_amount,
            expires_at=str(session.expires_at),
        )
        return str(session.id)
