"""Payment gateway port (abstract interface).

The marketplace only needs a payment intent for the session's aggregate
amount and a way to look it up again. Capturing funds and webhooks are the
gateway's business; its confirmation callback comes back in through
``ConfirmCheckoutPayment``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

INTENT_CANCELED = "canceled"


@dataclass(frozen=True)
class IntentResult:
    """Result of creating or retrieving a payment intent."""

    success: bool
    intent_id: str | None = None
    client_secret: str | None = None
    status: str | None = None
    amount: float | None = None
    currency: str | None = None
    metadata: dict = field(default_factory=dict)
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_payment_intent(self, amount: float, currency: str, metadata: dict) -> IntentResult:
        """Create an intent to collect ``amount`` in ``currency``."""
        ...

    @abstractmethod
    def retrieve_payment_intent(self, intent_id: str) -> IntentResult:
        """Look up a previously created intent."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        """Verify that a callback payload is authentically from the gateway."""
        ...
