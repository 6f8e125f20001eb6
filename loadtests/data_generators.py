"""Faker-based data generators for Locust load test scenarios.

Payloads match the field names of the checkout API's Pydantic request
schemas and only reference ids created by the demo data seeder.
"""

import random

from faker import Faker

from marketplace.utils.demo import SCARCE_LISTING_ID, buyer_id, listing_id

fake = Faker()

# Must match the seeder defaults the API was started with
DEMO_BUYERS = 100
DEMO_SELLERS = 5
DEMO_LISTINGS_PER_SELLER = 4


def random_buyer() -> str:
    return buyer_id(random.randrange(DEMO_BUYERS))


def cart_items(max_sellers: int = 3) -> list[dict]:
    """One to three lines, each from a different seller."""
    sellers = random.sample(range(DEMO_SELLERS), k=random.randint(1, max_sellers))
    return [
        {
            "listing_id": listing_id(seller, random.randrange(DEMO_LISTINGS_PER_SELLER)),
            "quantity": random.randint(1, 3),
        }
        for seller in sellers
    ]


def scarce_item() -> list[dict]:
    return [{"listing_id": SCARCE_LISTING_ID, "quantity": 1}]


def create_session_data(buyer: str, payment_method: str = "cod") -> dict:
    return {
        "user_id": buyer,
        "session_type": "cart",
        "items": cart_items(),
        "delivery_method": "delivery",
        "payment_method": payment_method,
    }


def personal_address() -> dict:
    """DeliveryAddressSchema payload for personal delivery."""
    return {
        "address_type": "personal",
        "recipient_name": fake.name()[:100],
        "phone": fake.msisdn()[:20],
        "street": fake.street_address()[:255],
        "city": fake.city()[:100],
        "state": fake.state()[:100],
        "postcode": fake.postcode()[:20],
    }


def status_note() -> str:
    return fake.sentence(nb_words=6)
