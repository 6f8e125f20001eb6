"""Marketplace bounded context: checkout sessions, stock reservations and orders.

A buyer's cart may span several sellers. Checkout holds stock against the
inventory ledger, prices each seller's share, and on payment confirmation
turns every seller group into its own Order.
"""

import structlog
from protean.domain import Domain

marketplace = Domain(name="marketplace")

logger = structlog.get_logger(__name__)
