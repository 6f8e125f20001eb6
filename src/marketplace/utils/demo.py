"""Demo data for running the API against the in-process fakes.

``seed_demo_data`` registers buyers, sellers and stocked listings with the
configured catalogue, directory and ledger. The load tests address them by
these ids, so the naming here is part of their contract.
"""

import structlog

from marketplace.catalogue.listings import get_catalogue
from marketplace.identity.directory import get_directory
from marketplace.inventory.ledger import get_ledger

logger = structlog.get_logger(__name__)

SCARCE_LISTING_ID = "demo-scarce-1"


def buyer_id(n: int) -> str:
    return f"demo-buyer-{n}"


def seller_id(n: int) -> str:
    return f"demo-seller-{n}"


def listing_id(seller: int, n: int) -> str:
    return f"demo-listing-{seller}-{n}"


def seed_demo_data(buyers=100, sellers=5, listings_per_seller=4, stock=100_000, scarce_stock=5):
    catalogue = get_catalogue()
    directory = get_directory()
    ledger = get_ledger()

    for n in range(buyers):
        directory.register(buyer_id(n), f"Demo Buyer {n}", f"buyer{n}@demo.example.com")

    for s in range(sellers):
        shop_name = f"Demo Shop {s}"
        directory.register(seller_id(s), f"Demo Seller {s}", f"seller{s}@demo.example.com", shop_name=shop_name)
        for n in range(listings_per_seller):
            price = 15.0 + 10 * n
            catalogue.add_listing(listing_id(s, n), f"Demo Item {s}-{n}", price, seller_id(s), seller_name=shop_name)
            ledger.set_stock(listing_id(s, n), stock)

    # One listing with very little stock so concurrent buyers contend for it
    catalogue.add_listing(SCARCE_LISTING_ID, "Limited Print", 40.0, seller_id(0), seller_name="Demo Shop 0")
    ledger.set_stock(SCARCE_LISTING_ID, scarce_stock)

    logger.info(
        "Demo data seeded",
        buyers=buyers,
        sellers=sellers,
        listings=sellers * listings_per_seller + 1,
    )
