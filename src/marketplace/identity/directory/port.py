"""Identity and access port.

Supplies the contact details copied into order snapshots, each seller's
delivery fee settings, and the predicates deciding who may view or change
an order. Authentication is handled upstream: callers pass only the
authenticated user id, and roles are looked up here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from marketplace.checkout.pricing.engine import SellerDeliverySettings

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class PartyProfile:
    user_id: str
    name: str
    email: str
    phone: str | None = None
    shop_name: str | None = None
    role: str | None = None


class IdentityDirectory(ABC):
    @abstractmethod
    def get_profile(self, user_id: str) -> PartyProfile | None: ...

    @abstractmethod
    def get_delivery_settings(self, seller_id: str) -> SellerDeliverySettings | None:
        """None when the seller relies on the platform defaults."""
        ...

    @abstractmethod
    def can_user_view(self, order, user_id: str) -> bool: ...

    @abstractmethod
    def can_user_modify(self, order, user_id: str) -> bool: ...
