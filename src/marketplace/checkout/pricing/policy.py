"""Fee policy: the configurable numbers behind checkout pricing.

Platform and gateway percentages, the minimum amount for online payment, the
settlement currency and session lifetimes are configuration, not constants.
``get_policy()`` builds the policy from ``MARKETPLACE_*`` environment
variables on first use; tests and deployments override it with
``set_policy()``.

Environment variables:
    MARKETPLACE_PLATFORM_FEE_PERCENT   flat platform fee, replaces the tiers
    MARKETPLACE_GATEWAY_FEE_PERCENT    default 2.9
    MARKETPLACE_GATEWAY_FIXED_FEE      default 0.0
    MARKETPLACE_MIN_ONLINE_AMOUNT      default 10.0
    MARKETPLACE_CURRENCY               default "myr"
    MARKETPLACE_SESSION_TTL_MINUTES    default 10
    MARKETPLACE_SESSION_RETENTION_MINUTES  default 60
"""

import os
from dataclasses import dataclass, field
from enum import Enum


class PaymentMethod(Enum):
    COD = "cod"
    CREDIT_CARD = "credit_card"


class DeliveryMethod(Enum):
    DELIVERY = "delivery"
    CAMPUS_DELIVERY = "campus_delivery"
    ROOM_DELIVERY = "room_delivery"
    SELF_PICKUP = "self_pickup"
    MEETUP = "meetup"


class DeliveryCategory(Enum):
    PERSONAL = "personal"
    CAMPUS = "campus"
    PICKUP = "pickup"


DELIVERY_CATEGORIES = {
    DeliveryMethod.DELIVERY.value: DeliveryCategory.PERSONAL.value,
    DeliveryMethod.CAMPUS_DELIVERY.value: DeliveryCategory.CAMPUS.value,
    DeliveryMethod.ROOM_DELIVERY.value: DeliveryCategory.CAMPUS.value,
    DeliveryMethod.SELF_PICKUP.value: DeliveryCategory.PICKUP.value,
    DeliveryMethod.MEETUP.value: DeliveryCategory.PICKUP.value,
}


@dataclass(frozen=True)
class PlatformFeeTier:
    """Applies to subtotals of at least ``min_subtotal``."""

    min_subtotal: float
    percentage: float
    online_payment_allowed: bool = True


DEFAULT_PLATFORM_TIERS = (
    PlatformFeeTier(min_subtotal=0.0, percentage=0.0, online_payment_allowed=False),
    PlatformFeeTier(min_subtotal=10.0, percentage=3.0),
    PlatformFeeTier(min_subtotal=50.0, percentage=5.0),
)

DEFAULT_DELIVERY_FEES = {
    DeliveryCategory.PERSONAL.value: 5.0,
    DeliveryCategory.CAMPUS.value: 2.5,
    DeliveryCategory.PICKUP.value: 1.0,
}


@dataclass(frozen=True)
class FeePolicy:
    platform_fee_tiers: tuple[PlatformFeeTier, ...] = DEFAULT_PLATFORM_TIERS
    gateway_fee_percentage: float = 2.9
    gateway_fixed_fee: float = 0.0
    gateway_payment_methods: frozenset[str] = frozenset({PaymentMethod.CREDIT_CARD.value})
    minimum_online_amount: float = 10.0
    currency: str = "myr"
    session_ttl_minutes: int = 10
    session_retention_minutes: int = 60
    default_delivery_fees: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_DELIVERY_FEES))

    def platform_tier(self, subtotal: float) -> PlatformFeeTier:
        tiers = sorted(self.platform_fee_tiers, key=lambda tier: tier.min_subtotal)
        selected = tiers[0]
        for tier in tiers:
            if subtotal >= tier.min_subtotal:
                selected = tier
        return selected

    def routes_through_gateway(self, payment_method: str | None) -> bool:
        return payment_method in self.gateway_payment_methods

    @classmethod
    def from_env(cls) -> "FeePolicy":
        tiers = DEFAULT_PLATFORM_TIERS
        flat_platform = os.getenv("MARKETPLACE_PLATFORM_FEE_PERCENT")
        minimum_online = float(os.getenv("MARKETPLACE_MIN_ONLINE_AMOUNT", "10.0"))
        if flat_platform is not None:
            tiers = (PlatformFeeTier(min_subtotal=0.0, percentage=float(flat_platform)),)

        return cls(
            platform_fee_tiers=tiers,
            gateway_fee_percentage=float(os.getenv("MARKETPLACE_GATEWAY_FEE_PERCENT", "2.9")),
            gateway_fixed_fee=float(os.getenv("MARKETPLACE_GATEWAY_FIXED_FEE", "0.0")),
            minimum_online_amount=minimum_online,
            currency=os.getenv("MARKETPLACE_CURRENCY", "myr").lower(),
            session_ttl_minutes=int(os.getenv("MARKETPLACE_SESSION_TTL_MINUTES", "10")),
            session_retention_minutes=int(os.getenv("MARKETPLACE_SESSION_RETENTION_MINUTES", "60")),
        )


_current_policy: FeePolicy | None = None


def get_policy() -> FeePolicy:
    global _current_policy
    if _current_policy is None:
        _current_policy = FeePolicy.from_env()
    return _current_policy


def set_policy(policy: FeePolicy) -> None:
    global _current_policy
    _current_policy = policy


def reset_policy() -> None:
    global _current_policy
    _current_policy = None
