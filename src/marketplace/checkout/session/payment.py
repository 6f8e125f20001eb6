"""Payment intents for checkout sessions: commands and handler.

The gateway is asked for one intent covering the whole session total. An
intent that is still alive at the gateway is reused rather than duplicated.
Gateway failures surface as ``PaymentGatewayError`` and are not retried.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.checkout.pricing.policy import get_policy
from marketplace.checkout.session.orchestrator import assert_holds_active_slot, load_session
from marketplace.checkout.session.session import CheckoutSession, SessionStatus
from marketplace.domain import marketplace
from marketplace.errors import PaymentGatewayError, SessionExpiredError
from marketplace.payments.gateway import get_gateway
from marketplace.payments.gateway.port import INTENT_CANCELED

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="CheckoutSession")
class CreatePaymentIntent:
    """Ask the gateway for an intent covering the session's total."""

    session_id = Identifier(required=True)


@marketplace.command(part_of="CheckoutSession")
class MarkPaymentIntentCreated:
    """Record an intent created elsewhere against the session."""

    session_id = Identifier(required=True)
    payment_intent_ref = String(required=True, max_length=255)


@marketplace.command_handler(part_of=CheckoutSession)
class CheckoutPaymentHandler:
    @handle(CreatePaymentIntent)
    def create_payment_intent(self, command):
        session = load_session(command.session_id)
        if session.is_expired():
            raise SessionExpiredError(str(session.id))
        assert_holds_active_slot(session)
        if not get_policy().routes_through_gateway(session.payment_method):
            raise ValidationError({"payment_method": [f"{session.payment_method} does not use a payment intent"]})

        gateway = get_gateway()

        if session.payment_intent_ref:
            existing = gateway.retrieve_payment_intent(session.payment_intent_ref)
            if existing.success and existing.status != INTENT_CANCELED:
                return {"intent_id": existing.intent_id, "client_secret": existing.client_secret}

        if session.status != SessionStatus.PAYMENT_INTENT_CREATED.value:
            session.assert_modifiable()

        result = gateway.create_payment_intent(
            amount=session.pricing.total_amount,
            currency=session.pricing.currency,
            metadata={
                "checkout_session_id": str(session.id),
                "user_id": str(session.user_id),
                "seller_count": len(session.seller_groups),
            },
        )
        if not result.success:
            logger.warning(
                "Payment intent creation failed",
                session_id=str(session.id),
                reason=result.failure_reason,
            )
            raise PaymentGatewayError(result.failure_reason or "Payment gateway rejected the request")

        session.mark_payment_intent_created(result.intent_id)
        current_domain.repository_for(CheckoutSession).add(session)

        logger.info(
            "Payment intent created",
            session_id=str(session.id),
            intent_id=result.intent_id,
            amount=session.pricing.total_amount,
        )
        return {"intent_id": result.intent_id, "client_secret": result.client_secret}

    @handle(MarkPaymentIntentCreated)
    def mark_payment_intent_created(self, command):
        session = load_session(command.session_id)
        assert_holds_active_slot(session)
        session.mark_payment_intent_created(command.payment_intent_ref)
        current_domain.repository_for(CheckoutSession).add(session)
        return str(session.id)
