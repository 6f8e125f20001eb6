"""Order placement: turns a ready checkout session into orders.

``PlaceOrders`` is what the buyer triggers; ``ConfirmCheckoutPayment`` is
the gateway's confirmation callback, which finds the session by its intent
reference and places the orders the same way. Placing orders for a session
that is already completed returns the orders it already has.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.checkout.pricing.policy import get_policy
from marketplace.checkout.session.completion import commit_session
from marketplace.checkout.session.orchestrator import assert_holds_active_slot, load_session
from marketplace.checkout.session.session import CheckoutSession, SessionStatus
from marketplace.domain import marketplace
from marketplace.errors import SessionExpiredError, SessionNotModifiableError
from marketplace.ordering.order.factory import OrderFactory
from marketplace.ordering.order.order import Order

logger = structlog.get_logger(__name__)

COD_INTENT_PREFIX = "cod:"


@marketplace.command(part_of="Order")
class PlaceOrders:
    """Create one order per seller group of a checkout session."""

    session_id = Identifier(required=True)


@marketplace.command(part_of="Order")
class ConfirmCheckoutPayment:
    """Gateway callback: the payment for an intent went through."""

    payment_intent_ref = String(required=True, max_length=255)


def _assert_ready(session):
    missing = {}
    if not session.delivery_method:
        missing["delivery_method"] = ["Delivery method is required"]
    if session.delivery_address is None:
        missing["delivery_address"] = ["Delivery address is required"]
    if not session.payment_method:
        missing["payment_method"] = ["Payment method is required"]
    if missing:
        raise ValidationError(missing)

    if get_policy().routes_through_gateway(session.payment_method) and not session.payment_intent_ref:
        raise ValidationError({"payment_intent": ["Payment intent has not been created"]})


def _summary(session, orders) -> dict:
    return {
        "session_id": str(session.id),
        "order_ids": [str(order.id) for order in orders],
        "order_numbers": [order.order_number for order in orders],
    }


def place_orders(session, factory=None) -> dict:
    factory = factory or OrderFactory()
    if session.status == SessionStatus.COMPLETED.value:
        return _summary(session, factory.existing_orders(session))

    if session.is_expired():
        raise SessionExpiredError(str(session.id))
    if not session.is_active:
        raise SessionNotModifiableError(str(session.id), session.status)
    assert_holds_active_slot(session)
    _assert_ready(session)

    # Cash on delivery never sees the gateway but walks the same states
    if session.status == SessionStatus.PENDING.value:
        session.mark_payment_intent_created(f"{COD_INTENT_PREFIX}{session.id}")

    orders = factory.create_orders(session)
    commit_session(session, [str(order.id) for order in orders])

    logger.info(
        "Orders placed",
        session_id=str(session.id),
        user_id=str(session.user_id),
        order_count=len(orders),
        total_amount=session.pricing.total_amount,
        payment_method=session.payment_method,
    )
    return _summary(session, orders)


@marketplace.command_handler(part_of=Order)
class OrderPlacementHandler:
    @handle(PlaceOrders)
    def place_orders(self, command):
        return place_orders(load_session(command.session_id))

    @handle(ConfirmCheckoutPayment)
    def confirm_checkout_payment(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        matches = repo._dao.query.filter(payment_intent_ref=command.payment_intent_ref).all().items
        if not matches:
            raise ObjectNotFoundError(f"No checkout session for payment intent {command.payment_intent_ref}")

        session = load_session(matches[0].id)
        logger.info(
            "Payment confirmed",
            session_id=str(session.id),
            payment_intent_ref=command.payment_intent_ref,
        )
        return place_orders(session)
