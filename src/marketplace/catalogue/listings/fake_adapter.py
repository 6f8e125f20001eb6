"""In-memory listing catalogue for development and tests."""

from marketplace.catalogue.listings.port import ListingCatalogue, ListingSnapshot, ListingType


class FakeListingCatalogue(ListingCatalogue):
    def __init__(self) -> None:
        self._listings: dict[str, ListingSnapshot] = {}

    def add_listing(
        self,
        listing_id: str,
        name: str,
        price: float,
        seller_id: str,
        seller_name: str = "",
        listing_type: str = ListingType.PRODUCT.value,
        is_active: bool = True,
        discount: float = 0.0,
    ) -> ListingSnapshot:
        snapshot = ListingSnapshot(
            listing_id=listing_id,
            name=name,
            price=price,
            seller_id=seller_id,
            seller_name=seller_name,
            listing_type=listing_type,
            is_active=is_active,
            discount=discount,
        )
        self._listings[listing_id] = snapshot
        return snapshot

    def deactivate(self, listing_id: str) -> None:
        listing = self._listings[listing_id]
        self._listings[listing_id] = ListingSnapshot(**{**listing.__dict__, "is_active": False})

    def get_listings(self, listing_ids: list[str]) -> dict[str, ListingSnapshot]:
        return {listing_id: self._listings[listing_id] for listing_id in listing_ids if listing_id in self._listings}
