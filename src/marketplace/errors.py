"""Marketplace error taxonomy.

Every error is a Protean ``ValidationError`` so the FastAPI exception
handlers render it as a 400 with ``{"error": {field: [message]}}``. Each
subclass adds a stable ``code`` and a ``details`` dict with the offending
listing, session or status so callers can render a precise message.
"""

from protean.exceptions import ValidationError

__all__ = [
    "InsufficientStockError",
    "InvalidStatusTransitionError",
    "ItemUnavailableError",
    "MarketplaceError",
    "OrderCreationError",
    "OrderNumberExhaustedError",
    "PaymentGatewayError",
    "SessionExpiredError",
    "SessionNotModifiableError",
    "ValidationError",
]


class MarketplaceError(ValidationError):
    code = "marketplace_error"

    def __init__(self, messages: dict, **details) -> None:
        super().__init__(messages)
        self.details = details


class ItemUnavailableError(MarketplaceError):
    code = "item_unavailable"

    def __init__(self, listing_id: str, reason: str = "Listing is no longer available") -> None:
        super().__init__({"listing_id": [f"{listing_id}: {reason}"]}, listing_id=listing_id)
        self.listing_id = listing_id


class InsufficientStockError(MarketplaceError):
    code = "insufficient_stock"

    def __init__(self, listing_id: str, requested: int, available: int) -> None:
        super().__init__(
            {"quantity": [f"Insufficient stock for {listing_id}. Available: {available}, Requested: {requested}"]},
            listing_id=listing_id,
            requested=requested,
            available=available,
        )
        self.listing_id = listing_id
        self.requested = requested
        self.available = available


class SessionExpiredError(MarketplaceError):
    code = "session_expired"

    def __init__(self, session_id: str) -> None:
        super().__init__(
            {"session": [f"Checkout session {session_id} has expired. Please restart checkout"]},
            session_id=session_id,
        )
        self.session_id = session_id


class SessionNotModifiableError(MarketplaceError):
    code = "session_not_modifiable"

    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(
            {"status": [f"Checkout session {session_id} cannot be modified in {status} state"]},
            session_id=session_id,
            status=status,
        )
        self.session_id = session_id
        self.status = status


class InvalidStatusTransitionError(MarketplaceError):
    code = "invalid_status_transition"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            {"status": [f"Cannot transition from {current} to {target}"]},
            current=current,
            target=target,
        )
        self.current = current
        self.target = target


class PaymentGatewayError(MarketplaceError):
    code = "payment_gateway_error"

    def __init__(self, reason: str, intent_id: str | None = None) -> None:
        super().__init__({"payment": [reason]}, reason=reason, intent_id=intent_id)
        self.reason = reason
        self.intent_id = intent_id


class OrderCreationError(MarketplaceError):
    """Raised when any seller group of a session cannot become an order.

    ``failures`` maps seller id (or ``"session"``) to the reasons collected
    for it. No order of the batch is persisted when this is raised.
    """

    code = "order_creation_failed"

    def __init__(self, session_id: str, failures: dict[str, list[str]]) -> None:
        messages = {key: list(reasons) for key, reasons in failures.items()}
        super().__init__(messages, session_id=session_id, failures=messages)
        self.session_id = session_id
        self.failures = messages


class OrderNumberExhaustedError(MarketplaceError):
    code = "order_number_exhausted"

    def __init__(self, day: str) -> None:
        super().__init__({"order_number": [f"Could not find a free order number for {day}"]}, day=day)
        self.day = day
