"""Listing catalogue port.

Checkout needs a live snapshot of each listing (price, seller, whether it
is still for sale) at the moment a session is created. Listing management
itself lives outside the marketplace checkout.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class ListingType(Enum):
    PRODUCT = "product"
    SERVICE = "service"


@dataclass(frozen=True)
class ListingSnapshot:
    listing_id: str
    name: str
    price: float
    seller_id: str
    seller_name: str = ""
    listing_type: str = ListingType.PRODUCT.value
    is_active: bool = True
    discount: float = 0.0

    @property
    def tracks_stock(self) -> bool:
        """Only physical products are held against the ledger."""
        return self.listing_type == ListingType.PRODUCT.value


class ListingCatalogue(ABC):
    @abstractmethod
    def get_listings(self, listing_ids: list[str]) -> dict[str, ListingSnapshot]:
        """Snapshots keyed by listing id. Unknown ids are omitted."""
        ...
