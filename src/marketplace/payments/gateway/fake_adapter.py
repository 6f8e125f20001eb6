"""Configurable fake payment gateway for development and testing.

No external calls: intents are kept in memory and the gateway can be told to
fail, which is how tests exercise ``PaymentGatewayError``.
"""

from uuid import uuid4

from marketplace.payments.gateway.port import INTENT_CANCELED, IntentResult, PaymentGateway


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.calls: list[dict] = []
        self._intents: dict[str, IntentResult] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_payment_intent(self, amount: float, currency: str, metadata: dict) -> IntentResult:
        self.calls.append(
            {
                "method": "create_payment_intent",
                "amount": amount,
                "currency": currency,
                "metadata": dict(metadata),
            }
        )
        if not self.should_succeed:
            return IntentResult(success=False, status="failed", failure_reason=self.failure_reason)

        intent_id = f"pi_fake_{uuid4().hex[:16]}"
        intent = IntentResult(
            success=True,
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid4().hex[:8]}",
            status="requires_payment_method",
            amount=amount,
            currency=currency,
            metadata=dict(metadata),
        )
        self._intents[intent_id] = intent
        return intent

    def retrieve_payment_intent(self, intent_id: str) -> IntentResult:
        self.calls.append({"method": "retrieve_payment_intent", "intent_id": intent_id})
        intent = self._intents.get(intent_id)
        if intent is None:
            return IntentResult(success=False, intent_id=intent_id, failure_reason="No such payment intent")
        return intent

    def cancel_intent(self, intent_id: str) -> None:
        """Simulate the buyer abandoning the intent at the gateway."""
        intent = self._intents[intent_id]
        self._intents[intent_id] = IntentResult(**{**intent.__dict__, "status": INTENT_CANCELED})

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
