"""Pricing engine: pure computation of seller group and checkout totals.

Nothing here touches storage. Money is rounded half-up to two decimals per
component, and totals are summed from the rounded components, so a group's
``total_amount`` always equals the sum of its parts. Comparisons elsewhere
allow ``TOLERANCE`` for values that went through float storage.

Per seller group:

    subtotal       = sum(unit_price * quantity - discount)
    delivery_fee   = seller fee table for the delivery category, 0 when free
    platform_fee   = platform tier % of subtotal
    gateway_fee    = gateway % of (subtotal + delivery + platform) + fixed fee,
                     only for payment methods routed through the gateway
    total_amount   = subtotal + delivery_fee + platform_fee + gateway_fee
    seller_receives = total_amount - platform_fee - gateway_fee (never negative)
"""

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from protean.exceptions import ValidationError

from marketplace.checkout.pricing.policy import DELIVERY_CATEGORIES, FeePolicy, get_policy

TOLERANCE = 0.01

_CENT = Decimal("0.01")


def round_money(value) -> float:
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def amounts_match(left: float, right: float) -> bool:
    return abs(left - right) <= TOLERANCE + 1e-9


def effective_unit_price(price: float, discount: float = 0.0) -> float:
    """The price a buyer actually pays for one unit."""
    return round_money(max(0.0, price - (discount or 0.0)))


def delivery_category(delivery_method: str | None) -> str | None:
    return DELIVERY_CATEGORIES.get(delivery_method)


@dataclass(frozen=True)
class DeliveryCategorySettings:
    enabled: bool = True
    fee: float | None = None
    free_threshold: float | None = None


@dataclass(frozen=True)
class SellerDeliverySettings:
    free_delivery_for_all: bool = False
    personal: DeliveryCategorySettings = DeliveryCategorySettings()
    campus: DeliveryCategorySettings = DeliveryCategorySettings()
    pickup: DeliveryCategorySettings = DeliveryCategorySettings()

    def for_category(self, category: str) -> DeliveryCategorySettings:
        return getattr(self, category)


@dataclass(frozen=True)
class PricedItem:
    unit_price: float
    quantity: int
    discount: float = 0.0


@dataclass(frozen=True)
class SellerGroupPricing:
    subtotal: float
    delivery_fee: float
    platform_fee: float
    gateway_fee: float
    total_amount: float
    seller_receives: float
    online_payment_allowed: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class AggregatePricing:
    subtotal: float
    delivery_fee: float
    platform_fee: float
    gateway_fee: float
    total_amount: float
    seller_receives: float
    currency: str

    def to_dict(self) -> dict:
        return asdict(self)


def compute_subtotal(items: Iterable) -> float:
    return round_money(sum(item.unit_price * item.quantity - (item.discount or 0.0) for item in items))


def compute_delivery_fee(
    subtotal: float,
    delivery_method: str | None,
    settings: SellerDeliverySettings | None = None,
    policy: FeePolicy | None = None,
) -> float | None:
    """Delivery fee for one seller group, or None when the seller does not offer the method.

    Unknown methods cost nothing.
    """
    policy = policy or get_policy()
    category = delivery_category(delivery_method)
    if category is None:
        return 0.0

    if settings is None:
        return round_money(policy.default_delivery_fees.get(category, 0.0))
    if settings.free_delivery_for_all:
        return 0.0

    category_settings = settings.for_category(category)
    if not category_settings.enabled:
        return None
    if category_settings.free_threshold is not None and subtotal >= category_settings.free_threshold:
        return 0.0
    if category_settings.fee is None:
        return round_money(policy.default_delivery_fees.get(category, 0.0))
    return round_money(category_settings.fee)


def is_online_payment_allowed(subtotal: float, policy: FeePolicy | None = None) -> bool:
    policy = policy or get_policy()
    return subtotal >= policy.minimum_online_amount and policy.platform_tier(subtotal).online_payment_allowed


def compute_seller_group(
    items: Iterable,
    delivery_method: str | None,
    seller_delivery_settings: SellerDeliverySettings | None = None,
    payment_method: str | None = None,
    policy: FeePolicy | None = None,
) -> SellerGroupPricing:
    policy = policy or get_policy()
    subtotal = compute_subtotal(items)

    delivery_fee = compute_delivery_fee(subtotal, delivery_method, seller_delivery_settings, policy)
    if delivery_fee is None:
        raise ValidationError({"delivery_method": [f"Seller does not offer {delivery_method}"]})

    tier = policy.platform_tier(subtotal)
    platform_fee = round_money(subtotal * tier.percentage / 100)

    gateway_fee = 0.0
    if policy.routes_through_gateway(payment_method):
        pre_gateway_total = subtotal + delivery_fee + platform_fee
        gateway_fee = round_money(pre_gateway_total * policy.gateway_fee_percentage / 100 + policy.gateway_fixed_fee)

    total_amount = round_money(subtotal + delivery_fee + platform_fee + gateway_fee)
    return SellerGroupPricing(
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        platform_fee=platform_fee,
        gateway_fee=gateway_fee,
        total_amount=total_amount,
        seller_receives=round_money(max(0.0, total_amount - platform_fee - gateway_fee)),
        online_payment_allowed=is_online_payment_allowed(subtotal, policy),
    )


def compute_aggregate(seller_groups: Iterable, currency: str | None = None) -> AggregatePricing:
    """Field-wise sum across seller groups (pricing results or SellerGroup entities)."""
    groups = list(seller_groups)

    def total(field_name):
        return round_money(sum(getattr(group, field_name) for group in groups))

    return AggregatePricing(
        subtotal=total("subtotal"),
        delivery_fee=total("delivery_fee"),
        platform_fee=total("platform_fee"),
        gateway_fee=total("gateway_fee"),
        total_amount=total("total_amount"),
        seller_receives=total("seller_receives"),
        currency=currency or get_policy().currency,
    )
