"""In-memory identity directory for development and tests.

Buyers and the order's seller may view and modify an order; so may anyone
registered with the admin role.
"""

from marketplace.checkout.pricing.engine import SellerDeliverySettings
from marketplace.identity.directory.port import ADMIN_ROLE, IdentityDirectory, PartyProfile


class FakeIdentityDirectory(IdentityDirectory):
    def __init__(self) -> None:
        self._profiles: dict[str, PartyProfile] = {}
        self._delivery_settings: dict[str, SellerDeliverySettings] = {}

    def register(self, user_id, name, email, phone=None, shop_name=None, role=None) -> PartyProfile:
        profile = PartyProfile(
            user_id=user_id,
            name=name,
            email=email,
            phone=phone,
            shop_name=shop_name,
            role=role,
        )
        self._profiles[user_id] = profile
        return profile

    def set_delivery_settings(self, seller_id: str, settings: SellerDeliverySettings) -> None:
        self._delivery_settings[seller_id] = settings

    def get_profile(self, user_id: str) -> PartyProfile | None:
        return self._profiles.get(user_id)

    def get_delivery_settings(self, seller_id: str) -> SellerDeliverySettings | None:
        return self._delivery_settings.get(seller_id)

    def _is_admin(self, user_id: str) -> bool:
        profile = self._profiles.get(user_id)
        return profile is not None and profile.role == ADMIN_ROLE

    def _is_party(self, order, user_id: str) -> bool:
        return user_id in (str(order.buyer_id), str(order.seller_id))

    def can_user_view(self, order, user_id: str) -> bool:
        return self._is_admin(user_id) or self._is_party(order, user_id)

    def can_user_modify(self, order, user_id: str) -> bool:
        return self._is_admin(user_id) or self._is_party(order, user_id)
