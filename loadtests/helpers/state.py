"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state, with no cross-user
sharing. State tracks ids returned by the API so follow-up steps can
reference them.
"""

from dataclasses import dataclass, field


@dataclass
class CheckoutState:
    """Tracks a single simulated buyer's checkout."""

    buyer_id: str | None = None
    session_id: str | None = None
    payment_method: str = "cod"
    intent_id: str | None = None
    order_ids: list[str] = field(default_factory=list)
    seller_ids: list[str] = field(default_factory=list)
