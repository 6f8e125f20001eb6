"""CheckoutSession aggregate: a buyer's in-progress, time-boxed purchase.

A session snapshots what the buyer is buying (price, seller, stock at that
moment), groups the items by seller and prices every group. Stock is held
for the session's items until it completes, is cancelled, or expires.

State Machine:
    PENDING → PAYMENT_INTENT_CREATED → COMPLETED
    PENDING / PAYMENT_INTENT_CREATED → CANCELLED | EXPIRED

Expiry is passive. ``is_expired`` compares ``expires_at`` with the clock and
turns true exactly at the deadline, whether or not anything has marked the
session expired yet.
"""

import json
from datetime import timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from marketplace.checkout.pricing.engine import amounts_match, delivery_category, round_money
from marketplace.checkout.pricing.policy import DeliveryCategory, DeliveryMethod, PaymentMethod
from marketplace.checkout.session.events import (
    CheckoutSessionCancelled,
    CheckoutSessionCompleted,
    CheckoutSessionCreated,
    CheckoutSessionExpired,
    CheckoutSessionUpdated,
    PaymentIntentRecorded,
)
from marketplace.domain import marketplace
from marketplace.errors import SessionExpiredError, SessionNotModifiableError
from marketplace.utils.timestamps import as_utc, utcnow

DEFAULT_TTL_MINUTES = 10


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SessionStatus(Enum):
    PENDING = "pending"
    PAYMENT_INTENT_CREATED = "payment_intent_created"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SessionType(Enum):
    CART = "cart"
    DIRECT = "direct"


_VALID_TRANSITIONS = {
    SessionStatus.PENDING: {
        SessionStatus.PAYMENT_INTENT_CREATED,
        SessionStatus.CANCELLED,
        SessionStatus.EXPIRED,
    },
    SessionStatus.PAYMENT_INTENT_CREATED: {
        SessionStatus.COMPLETED,
        SessionStatus.CANCELLED,
        SessionStatus.EXPIRED,
    },
    SessionStatus.COMPLETED: set(),  # Terminal
    SessionStatus.EXPIRED: set(),  # Terminal
    SessionStatus.CANCELLED: set(),  # Terminal
}

ACTIVE_STATES = {SessionStatus.PENDING.value, SessionStatus.PAYMENT_INTENT_CREATED.value}

# Fields each address type must carry
_ADDRESS_REQUIREMENTS = {
    DeliveryCategory.PERSONAL.value: ("street", "city", "postcode"),
    DeliveryCategory.CAMPUS.value: ("campus", "building"),
    DeliveryCategory.PICKUP.value: ("pickup_location",),
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="CheckoutSession")
class DeliveryAddress:
    """Where (or how) the buyer receives the goods.

    ``address_type`` names the delivery category it serves: a street address
    for personal delivery, a building and room on campus, or a pickup spot.
    """

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


@marketplace.value_object(part_of="CheckoutSession")
class SessionPricing:
    """Checkout-wide totals: the field-wise sum of every seller group."""

    subtotal = Float(default=0.0)
    delivery_fee = Float(default=0.0)
    platform_fee = Float(default=0.0)
    gateway_fee = Float(default=0.0)
    total_amount = Float(default=0.0)
    seller_receives = Float(default=0.0)
    currency = String(max_length=3, default="myr")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="CheckoutSession")
class CheckoutItem:
    """A listing as it looked when checkout started. Later catalogue changes do not apply."""

    listing_id = Identifier(required=True)
    listing_name = String(required=True, max_length=255)
    listing_type = String(max_length=20, default="product")
    seller_id = Identifier(required=True)
    seller_name = String(max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    discount = Float(default=0.0)  # Whole line, not per unit
    quantity = Integer(required=True, min_value=1)
    available_stock = Integer()


@marketplace.entity(part_of="CheckoutSession")
class SellerGroup:
    seller_id = Identifier(required=True)
    seller_name = String(max_length=255)
    listing_ids = Text()  # JSON array of listing ids
    subtotal = Float(default=0.0)
    delivery_fee = Float(default=0.0)
    platform_fee = Float(default=0.0)
    gateway_fee = Float(default=0.0)
    total_amount = Float(default=0.0)
    seller_receives = Float(default=0.0)
    online_payment_allowed = Boolean(default=True)

    @property
    def listing_id_list(self) -> list[str]:
        return json.loads(self.listing_ids) if self.listing_ids else []


@marketplace.entity(part_of="CheckoutSession")
class SessionReservation:
    """Reference to a StockReservation held for this session."""

    reservation_id = Identifier(required=True)
    listing_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    reserved_at = DateTime()


# ---------------------------------------------------------------------------
# Pure functions over persisted fields
# ---------------------------------------------------------------------------
def is_expired(session, now=None) -> bool:
    """True from ``expires_at`` onwards, and for sessions already marked expired."""
    if session.status == SessionStatus.EXPIRED.value:
        return True
    return (as_utc(now) or utcnow()) >= as_utc(session.expires_at)


def can_modify(session, now=None) -> bool:
    return session.status == SessionStatus.PENDING.value and not is_expired(session, now)


def minutes_remaining(session, now=None) -> int:
    remaining = as_utc(session.expires_at) - (as_utc(now) or utcnow())
    return max(0, int(remaining.total_seconds() // 60))


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class CheckoutSession:
    user_id = Identifier(required=True)
    session_type = String(choices=SessionType, default=SessionType.CART.value)
    items = HasMany(CheckoutItem)
    seller_groups = HasMany(SellerGroup)
    stock_reservations = HasMany(SessionReservation)
    pricing = ValueObject(SessionPricing)
    delivery_method = String(choices=DeliveryMethod, default=DeliveryMethod.DELIVERY.value)
    delivery_address = ValueObject(DeliveryAddress)
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.COD.value)
    payment_intent_ref = String(max_length=255)
    status = String(choices=SessionStatus, default=SessionStatus.PENDING.value)
    created_orders = Text()  # JSON array of order ids
    cancel_reason = String(max_length=100)
    expires_at = DateTime(required=True)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def session_must_have_items(self):
        if not self.items:
            raise ValidationError({"items": ["A checkout session needs at least one item"]})

    @invariant.post
    def session_must_have_seller_groups(self):
        if not self.seller_groups:
            raise ValidationError({"seller_groups": ["A checkout session needs at least one seller group"]})

    @invariant.post
    def seller_group_totals_must_balance(self):
        for group in self.seller_groups or []:
            expected = group.subtotal + group.delivery_fee + group.platform_fee + group.gateway_fee
            if not amounts_match(expected, group.total_amount):
                raise ValidationError(
                    {"seller_groups": [f"Seller group {group.seller_id} total does not match its components"]}
                )

    @invariant.post
    def online_payment_requires_eligible_groups(self):
        if self.payment_method in (None, PaymentMethod.COD.value):
            return
        blocked = [str(g.seller_id) for g in self.seller_groups or [] if not g.online_payment_allowed]
        if blocked:
            raise ValidationError(
                {"payment_method": [f"Online payment is not available for sellers {', '.join(blocked)}"]}
            )

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        user_id,
        session_type,
        items,
        seller_groups,
        pricing,
        delivery_method=None,
        payment_method=None,
        expires_at=None,
        now=None,
        ttl_minutes=DEFAULT_TTL_MINUTES,
    ):
        now = as_utc(now) or utcnow()
        expires_at = as_utc(expires_at) or now + timedelta(minutes=ttl_minutes)

        session = cls(
            user_id=user_id,
            session_type=session_type or SessionType.CART.value,
            items=items,
            seller_groups=seller_groups,
            pricing=pricing,
            delivery_method=delivery_method or DeliveryMethod.DELIVERY.value,
            payment_method=payment_method or PaymentMethod.COD.value,
            status=SessionStatus.PENDING.value,
            created_orders=json.dumps([]),
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )

        session.raise_(
            CheckoutSessionCreated(
                session_id=str(session.id),
                user_id=str(user_id),
                session_type=session.session_type,
                item_count=len(items),
                seller_count=len(seller_groups),
                total_amount=pricing.total_amount,
                currency=pricing.currency,
                expires_at=expires_at,
                created_at=now,
            )
        )
        return session

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATES

    def is_expired(self, now=None) -> bool:
        return is_expired(self, now)

    def can_modify(self, now=None) -> bool:
        return can_modify(self, now)

    @property
    def order_ids(self) -> list[str]:
        return json.loads(self.created_orders) if self.created_orders else []

    def group_for(self, seller_id):
        return next((g for g in self.seller_groups if str(g.seller_id) == str(seller_id)), None)

    def items_for(self, group) -> list:
        listing_ids = set(group.listing_id_list)
        return [item for item in self.items if str(item.listing_id) in listing_ids]

    def item_for(self, listing_id):
        return next((i for i in self.items if str(i.listing_id) == str(listing_id)), None)

    def reservations_for(self, listing_ids) -> list:
        wanted = {str(listing_id) for listing_id in listing_ids}
        return [r for r in self.stock_reservations if str(r.listing_id) in wanted]

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = SessionStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise SessionNotModifiableError(str(self.id), current.value)

    def assert_modifiable(self, now=None):
        """Raise unless the session may still be changed by the buyer."""
        if is_expired(self, now):
            raise SessionExpiredError(str(self.id))
        if not can_modify(self, now):
            raise SessionNotModifiableError(str(self.id), self.status)

    # -------------------------------------------------------------------
    # Modification (PENDING only)
    # -------------------------------------------------------------------
    def attach_reservation(self, reservation_id, listing_id, quantity, reserved_at=None):
        self.add_stock_reservations(
            SessionReservation(
                reservation_id=reservation_id,
                listing_id=listing_id,
                quantity=quantity,
                reserved_at=reserved_at or utcnow(),
            )
        )

    def detach_reservation(self, reservation_id):
        reference = next(
            (r for r in self.stock_reservations if str(r.reservation_id) == str(reservation_id)),
            None,
        )
        if reference is not None:
            self.remove_stock_reservations(reference)

    def change_delivery_method(self, delivery_method, now=None):
        self.assert_modifiable(now)
        self.delivery_method = delivery_method

    def change_payment_method(self, payment_method, now=None):
        self.assert_modifiable(now)
        self.payment_method = payment_method

    def set_delivery_address(self, address, now=None):
        """Record the address; its type must match the delivery method's category."""
        self.assert_modifiable(now)
        category = delivery_category(self.delivery_method)
        if category is not None and address.address_type != category:
            raise ValidationError(
                {"delivery_address": [f"A {address.address_type} address cannot be used for {self.delivery_method}"]}
            )
        missing = [name for name in _ADDRESS_REQUIREMENTS.get(address.address_type, ()) if not getattr(address, name)]
        if missing:
            raise ValidationError({"delivery_address": [f"Missing {', '.join(missing)}"]})
        self.delivery_address = address

    def change_item_quantity(self, listing_id, quantity, now=None):
        self.assert_modifiable(now)
        item = self.item_for(listing_id)
        if item is None:
            raise ValidationError({"listing_id": [f"Listing {listing_id} is not part of this checkout"]})
        if not isinstance(quantity, int) or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if item.listing_type == "product" and item.available_stock is not None:
            item.available_stock = item.available_stock + item.quantity - quantity
        if item.discount:
            item.discount = round_money(item.discount / item.quantity * quantity)
        item.quantity = quantity

    def apply_pricing(self, group_pricing, aggregate, changed_fields=None, now=None):
        """Store freshly computed prices for every seller group and the session total."""
        now = as_utc(now) or utcnow()
        with atomic_change(self):
            for group in self.seller_groups:
                priced = group_pricing[str(group.seller_id)]
                group.subtotal = priced.subtotal
                group.delivery_fee = priced.delivery_fee
                group.platform_fee = priced.platform_fee
                group.gateway_fee = priced.gateway_fee
                group.total_amount = priced.total_amount
                group.seller_receives = priced.seller_receives
                group.online_payment_allowed = priced.online_payment_allowed
            self.pricing = SessionPricing(**aggregate.to_dict())
            self.updated_at = now

        if changed_fields:
            self.raise_(
                CheckoutSessionUpdated(
                    session_id=str(self.id),
                    changed_fields=json.dumps(sorted(changed_fields)),
                    total_amount=self.pricing.total_amount,
                    updated_at=now,
                )
            )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def mark_payment_intent_created(self, intent_ref, now=None):
        """Record the gateway intent. A dead intent may be replaced while awaiting payment."""
        if self.status == SessionStatus.PAYMENT_INTENT_CREATED.value and self.payment_intent_ref == intent_ref:
            return
        if is_expired(self, now):
            raise SessionExpiredError(str(self.id))
        if self.status != SessionStatus.PAYMENT_INTENT_CREATED.value:
            self._assert_can_transition(SessionStatus.PAYMENT_INTENT_CREATED)

        now = as_utc(now) or utcnow()
        with atomic_change(self):
            self.payment_intent_ref = intent_ref
            self.status = SessionStatus.PAYMENT_INTENT_CREATED.value
            self.updated_at = now

        self.raise_(
            PaymentIntentRecorded(
                session_id=str(self.id),
                payment_intent_ref=intent_ref,
                recorded_at=now,
            )
        )

    def complete(self, order_ids, now=None):
        """Record the created orders. Completing twice is a no-op."""
        if self.status == SessionStatus.COMPLETED.value:
            return
        if is_expired(self, now):
            raise SessionExpiredError(str(self.id))
        self._assert_can_transition(SessionStatus.COMPLETED)

        now = as_utc(now) or utcnow()
        order_ids = [str(order_id) for order_id in order_ids]
        with atomic_change(self):
            self.created_orders = json.dumps(order_ids)
            self.status = SessionStatus.COMPLETED.value
            self.updated_at = now

        self.raise_(
            CheckoutSessionCompleted(
                session_id=str(self.id),
                user_id=str(self.user_id),
                order_ids=json.dumps(order_ids),
                completed_at=now,
            )
        )

    def cancel(self, reason="cancelled_by_user", now=None):
        """Cancel the session. Cancelling a cancelled or expired session changes nothing."""
        if self.status in (SessionStatus.CANCELLED.value, SessionStatus.EXPIRED.value):
            return
        self._assert_can_transition(SessionStatus.CANCELLED)

        now = as_utc(now) or utcnow()
        with atomic_change(self):
            self.status = SessionStatus.CANCELLED.value
            self.cancel_reason = reason
            self.updated_at = now

        self.raise_(
            CheckoutSessionCancelled(
                session_id=str(self.id),
                user_id=str(self.user_id),
                reason=reason,
                cancelled_at=now,
            )
        )

    def expire(self, now=None):
        if self.status == SessionStatus.EXPIRED.value:
            return
        self._assert_can_transition(SessionStatus.EXPIRED)

        now = as_utc(now) or utcnow()
        with atomic_change(self):
            self.status = SessionStatus.EXPIRED.value
            self.updated_at = now

        self.raise_(
            CheckoutSessionExpired(
                session_id=str(self.id),
                user_id=str(self.user_id),
                expires_at=as_utc(self.expires_at),
                expired_at=now,
            )
        )
