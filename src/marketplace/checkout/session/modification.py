"""Checkout session modification: command and handler.

Only a pending session inside its validity window can change. Every change
reprices the whole session. A quantity change releases the line's old hold
before placing the new one, so the buyer's own units count as available.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.checkout.pricing.engine import delivery_category
from marketplace.checkout.session.orchestrator import load_session, reprice_session
from marketplace.checkout.session.session import CheckoutSession, DeliveryAddress
from marketplace.domain import marketplace
from marketplace.errors import InsufficientStockError
from marketplace.inventory.reservation.manager import StockReservationManager

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="CheckoutSession")
class UpdateCheckoutSession:
    """Change delivery, address, payment method or quantities of a pending session."""

    session_id = Identifier(required=True)
    delivery_method = String(max_length=50)
    delivery_address = Text()  # JSON: DeliveryAddress fields
    payment_method = String(max_length=50)
    item_quantities = Text()  # JSON: {listing_id: quantity}


def _change_quantity(session, listing_id, quantity, manager):
    item = session.item_for(listing_id)
    if item is None or not isinstance(quantity, int) or quantity < 1 or item.quantity == quantity:
        session.change_item_quantity(listing_id, quantity)
        return

    if item.listing_type == "product":
        held = session.reservations_for([listing_id])
        held_quantity = sum(reference.quantity for reference in held)
        available = manager.ledger.get_availability(str(listing_id))
        if quantity > available + held_quantity:
            raise InsufficientStockError(str(listing_id), requested=quantity, available=available + held_quantity)

        for reference in held:
            manager.release(str(reference.reservation_id), reason="quantity_changed")
            session.detach_reservation(reference.reservation_id)
        reservation = manager.reserve(str(listing_id), quantity, session_id=str(session.id))
        session.attach_reservation(
            reservation_id=str(reservation.id),
            listing_id=str(listing_id),
            quantity=quantity,
            reserved_at=reservation.reserved_at,
        )

    session.change_item_quantity(listing_id, quantity)


@marketplace.command_handler(part_of=CheckoutSession)
class UpdateCheckoutSessionHandler:
    @handle(UpdateCheckoutSession)
    def update_checkout_session(self, command):
        session = load_session(command.session_id)
        session.assert_modifiable()

        changed = set()

        if command.item_quantities:
            quantities = json.loads(command.item_quantities)
            manager = StockReservationManager()
            for listing_id, quantity in quantities.items():
                _change_quantity(session, listing_id, quantity, manager)
            changed.add("item_quantities")
            # Online-payment eligibility follows the new subtotals
            reprice_session(session)

        if command.delivery_method and command.delivery_method != session.delivery_method:
            session.change_delivery_method(command.delivery_method)
            changed.add("delivery_method")
            address = session.delivery_address
            if address is not None and address.address_type != delivery_category(command.delivery_method):
                session.delivery_address = None

        if command.delivery_address:
            session.set_delivery_address(DeliveryAddress(**json.loads(command.delivery_address)))
            changed.add("delivery_address")

        if command.payment_method and command.payment_method != session.payment_method:
            session.change_payment_method(command.payment_method)
            changed.add("payment_method")

        reprice_session(session, changed_fields=changed)
        current_domain.repository_for(CheckoutSession).add(session)

        logger.info(
            "Checkout session updated",
            session_id=str(session.id),
            changed_fields=sorted(changed),
            total_amount=session.pricing.total_amount,
        )
        return str(session.id)
