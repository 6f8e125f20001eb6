"""Checkout session expiry: command and handler for the background sweep.

Triggered periodically by an external scheduler (cron, K8s CronJob) through
the maintenance endpoint. Correctness never depends on it: every read
already treats a session past ``expires_at`` as expired. The sweep frees
stock held by sessions nobody reads again, and deletes finished sessions once
their retention window has passed.
"""

from datetime import timedelta

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import DateTime
from protean.utils.globals import current_domain

from marketplace.checkout.pricing.policy import get_policy
from marketplace.checkout.session.orchestrator import expire_if_due
from marketplace.checkout.session.session import ACTIVE_STATES, CheckoutSession, SessionStatus
from marketplace.domain import marketplace
from marketplace.utils.timestamps import as_utc, utcnow

logger = structlog.get_logger(__name__)

_TERMINAL_STATES = (
    SessionStatus.COMPLETED.value,
    SessionStatus.EXPIRED.value,
    SessionStatus.CANCELLED.value,
)


@marketplace.command(part_of="CheckoutSession")
class ExpireStaleCheckoutSessions:
    """Expire active sessions past their deadline and purge old finished ones."""

    as_of = DateTime()  # Optional: defaults to now


@marketplace.command_handler(part_of=CheckoutSession)
class ExpireStaleCheckoutSessionsHandler:
    @handle(ExpireStaleCheckoutSessions)
    def expire_stale_checkout_sessions(self, command):
        as_of = as_utc(command.as_of) or utcnow()
        repo = current_domain.repository_for(CheckoutSession)

        expired_count = 0
        for status in sorted(ACTIVE_STATES):
            for session in repo._dao.query.filter(status=status).all().items:
                try:
                    if expire_if_due(session, now=as_of):
                        expired_count += 1
                except (ValidationError, InvalidOperationError) as exc:
                    logger.warning(
                        "Failed to expire checkout session",
                        session_id=str(session.id),
                        error=str(exc),
                    )

        retention = timedelta(minutes=get_policy().session_retention_minutes)
        purged_count = 0
        for status in _TERMINAL_STATES:
            for session in repo._dao.query.filter(status=status).all().items:
                if as_utc(session.expires_at) + retention <= as_of:
                    repo._dao.delete(session)
                    purged_count += 1

        logger.info(
            "Checkout session sweep complete",
            expired_count=expired_count,
            purged_count=purged_count,
        )
        return {"expired": expired_count, "purged": purged_count}
