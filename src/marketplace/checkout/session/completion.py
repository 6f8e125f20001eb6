"""Checkout session completion: command and handler."""

import json

import structlog
from protean import handle
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from marketplace.checkout.active_sessions import get_registry
from marketplace.checkout.session.session import CheckoutSession, SessionStatus
from marketplace.domain import marketplace

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="CheckoutSession")
class CommitCheckoutSession:
    """Record the orders created for the session and close it."""

    session_id = Identifier(required=True)
    order_ids = Text(required=True)  # JSON array of order ids


def commit_session(session, order_ids, now=None):
    """Complete ``session`` and free the buyer's active-session slot. Idempotent."""
    already_completed = session.status == SessionStatus.COMPLETED.value
    session.complete(order_ids, now=now)
    current_domain.repository_for(CheckoutSession).add(session)
    get_registry().release(str(session.user_id), str(session.id))

    if not already_completed:
        logger.info(
            "Checkout session completed",
            session_id=str(session.id),
            user_id=str(session.user_id),
            order_count=len(session.order_ids),
        )
    return session


@marketplace.command_handler(part_of=CheckoutSession)
class CommitCheckoutSessionHandler:
    @handle(CommitCheckoutSession)
    def commit_checkout_session(self, command):
        session = current_domain.repository_for(CheckoutSession).get(command.session_id)
        order_ids = json.loads(command.order_ids) if isinstance(command.order_ids, str) else command.order_ids
        commit_session(session, order_ids)
        return session.order_ids
