"""Order aggregate: one seller's share of a completed checkout.

An Order is created once by the order factory and afterwards changes only
through ``update_status``. Buyer and seller details are copied in at
creation and never follow later profile changes.

State Machine:
    PENDING → CONFIRMED | PROCESSING | CANCELLED
    CONFIRMED → PROCESSING | SHIPPED | COMPLETED | CANCELLED
    PROCESSING → SHIPPED | DELIVERED | COMPLETED | CANCELLED
    SHIPPED → DELIVERED | COMPLETED
    DELIVERED → COMPLETED
    COMPLETED, CANCELLED, REFUNDED are terminal

Intermediate states can be skipped (an in-person handover goes straight from
confirmed to completed) but never revisited.
"""

from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from marketplace.checkout.pricing.engine import amounts_match, round_money
from marketplace.checkout.pricing.policy import DeliveryCategory, DeliveryMethod, PaymentMethod
from marketplace.domain import marketplace
from marketplace.errors import InvalidStatusTransitionError
from marketplace.ordering.order.events import OrderPlaced, OrderStatusChanged
from marketplace.utils.timestamps import as_utc, utcnow


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.COMPLETED},
    OrderStatus.DELIVERED: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

TERMINAL_STATES = {status for status, targets in _VALID_TRANSITIONS.items() if not targets}

_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

# Status -> timestamp field stamped when the order reaches it
_MILESTONES = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.PROCESSING: "processing_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def is_valid_transition(current, target) -> bool:
    return OrderStatus(target) in _VALID_TRANSITIONS.get(OrderStatus(current), set())


def can_cancel(order) -> bool:
    return OrderStatus(order.status) in _CANCELLABLE_STATES


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class BuyerSnapshot:
    """The buyer as they were when the order was placed."""

    user_id = Identifier(required=True)
    name = String(max_length=255)
    email = String(max_length=255)
    phone = String(max_length=30)


@marketplace.value_object(part_of="Order")
class SellerSnapshot:
    user_id = Identifier(required=True)
    name = String(max_length=255)
    email = String(max_length=255)
    phone = String(max_length=30)
    shop_name = String(max_length=255)


@marketplace.value_object(part_of="Order")
class OrderAddress:
    """Copy of the checkout's delivery address."""

    address_type = String(choices=DeliveryCategory, required=True)
    recipient_name = String(max_length=255)
    phone = String(max_length=30)
    street = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postcode = String(max_length=20)
    campus = String(max_length=255)
    building = String(max_length=255)
    room = String(max_length=50)
    pickup_location = String(max_length=255)
    notes = String(max_length=500)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderItem:
    listing_id = Identifier(required=True)
    listing_name = String(required=True, max_length=255)
    listing_type = String(max_length=20, default="product")
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    discount = Float(default=0.0)  # Whole line

    @property
    def line_total(self) -> float:
        return round_money(self.unit_price * self.quantity)


@marketplace.entity(part_of="Order")
class StatusHistoryEntry:
    """One step in the order's life. Entries are only ever appended."""

    status = String(choices=OrderStatus, required=True)
    note = String(max_length=500)
    updated_at = DateTime(required=True)
    updated_by = Identifier()


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    order_number = String(required=True, max_length=30, unique=True)
    checkout_session_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    buyer = ValueObject(BuyerSnapshot)
    seller = ValueObject(SellerSnapshot)
    items = HasMany(OrderItem)
    status_history = HasMany(StatusHistoryEntry)
    delivery_method = String(choices=DeliveryMethod)
    delivery_address = ValueObject(OrderAddress)
    payment_method = String(choices=PaymentMethod)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    items_total = Float(default=0.0, min_value=0.0)
    shipping_fee = Float(default=0.0, min_value=0.0)
    total_discount = Float(default=0.0, min_value=0.0)
    total_amount = Float(default=0.0, min_value=0.0)
    platform_fee = Float(default=0.0)
    gateway_fee = Float(default=0.0)
    seller_receives = Float(default=0.0)
    currency = String(max_length=3, default="myr")
    placed_at = DateTime()
    confirmed_at = DateTime()
    processing_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    completed_at = DateTime()
    cancelled_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def order_must_have_items(self):
        if not self.items:
            raise ValidationError({"items": ["An order needs at least one item"]})

    @invariant.post
    def discount_cannot_exceed_charges(self):
        if self.total_discount > self.items_total + self.shipping_fee + 0.01:
            raise ValidationError({"total_discount": ["Discount cannot exceed items total plus shipping"]})

    @invariant.post
    def total_must_balance(self):
        expected = self.items_total + self.shipping_fee - self.total_discount
        if not amounts_match(expected, self.total_amount):
            raise ValidationError(
                {"total_amount": [f"Total {self.total_amount} does not match items, shipping and discount"]}
            )

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number,
        checkout_session_id,
        buyer,
        seller,
        items,
        shipping_fee,
        platform_fee=0.0,
        gateway_fee=0.0,
        seller_receives=0.0,
        currency="myr",
        delivery_method=None,
        delivery_address=None,
        payment_method=None,
        now=None,
    ):
        now = as_utc(now) or utcnow()
        items_total = round_money(sum(item.unit_price * item.quantity for item in items))
        total_discount = round_money(sum(item.discount or 0.0 for item in items))

        order = cls(
            order_number=order_number,
            checkout_session_id=checkout_session_id,
            buyer_id=buyer.user_id,
            seller_id=seller.user_id,
            buyer=buyer,
            seller=seller,
            items=items,
            status_history=[
                StatusHistoryEntry(
                    status=OrderStatus.PENDING.value,
                    note="Order placed",
                    updated_at=now,
                    updated_by=buyer.user_id,
                )
            ],
            delivery_method=delivery_method,
            delivery_address=delivery_address,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            status=OrderStatus.PENDING.value,
            items_total=items_total,
            shipping_fee=round_money(shipping_fee),
            total_discount=total_discount,
            total_amount=round_money(items_total + shipping_fee - total_discount),
            platform_fee=round_money(platform_fee),
            gateway_fee=round_money(gateway_fee),
            seller_receives=round_money(seller_receives),
            currency=currency,
            placed_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                checkout_session_id=str(checkout_session_id),
                buyer_id=str(buyer.user_id),
                seller_id=str(seller.user_id),
                total_amount=order.total_amount,
                currency=currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def can_cancel(self) -> bool:
        return can_cancel(self)

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATES

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidStatusTransitionError(current.value, target_status.value)

    def update_status(self, new_status, note=None, actor_id=None, now=None):
        """Move to ``new_status``, recording who did it. Invalid moves leave the order untouched."""
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown order status {new_status}"]})
        self._assert_can_transition(target)

        now = as_utc(now) or utcnow()
        previous = self.status
        with atomic_change(self):
            self.status = target.value
            milestone = _MILESTONES.get(target)
            if milestone is not None:
                setattr(self, milestone, now)
            self.add_status_history(
                StatusHistoryEntry(
                    status=target.value,
                    note=note,
                    updated_at=now,
                    updated_by=actor_id,
                )
            )

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                previous_status=previous,
                new_status=target.value,
                note=note,
                updated_by=actor_id,
                changed_at=now,
            )
        )
