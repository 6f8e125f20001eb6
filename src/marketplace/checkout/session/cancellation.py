"""Checkout session cancellation: command and handler.

Cancelling releases every hold the session references. A session already
past its deadline is recorded as expired instead; cancelling a cancelled or
expired session is a no-op, and a completed session cannot be cancelled.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.checkout.active_sessions import get_registry
from marketplace.checkout.session.orchestrator import load_session, release_session_holds
from marketplace.checkout.session.session import CheckoutSession
from marketplace.domain import marketplace

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="CheckoutSession")
class CancelCheckoutSession:
    session_id = Identifier(required=True)
    reason = String(max_length=100, default="cancelled_by_user")


@marketplace.command_handler(part_of=CheckoutSession)
class CancelCheckoutSessionHandler:
    @handle(CancelCheckoutSession)
    def cancel_checkout_session(self, command):
        session = load_session(command.session_id)
        if not session.is_active:
            # Raises for completed sessions, no-op for cancelled/expired ones
            session.cancel(reason=command.reason)
            return session.status

        released = release_session_holds(session, reason=command.reason or "cancelled_by_user")
        session.cancel(reason=command.reason or "cancelled_by_user")
        current_domain.repository_for(CheckoutSession).add(session)
        get_registry().release(str(session.user_id), str(session.id))

        logger.info(
            "Checkout session cancelled",
            session_id=str(session.id),
            user_id=str(session.user_id),
            reason=command.reason,
            released_reservations=released,
        )
        return session.status
