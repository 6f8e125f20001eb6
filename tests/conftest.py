import json
import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config overlay before the domain is imported."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _fresh_adapters():
    """Give every test its own in-memory ledger, registry and fakes."""
    from marketplace.catalogue.listings import reset_catalogue
    from marketplace.checkout.active_sessions import set_registry
    from marketplace.checkout.active_sessions.memory_adapter import MemoryActiveSessionRegistry
    from marketplace.checkout.pricing.policy import reset_policy
    from marketplace.identity.directory import reset_directory
    from marketplace.inventory.ledger import set_ledger
    from marketplace.inventory.ledger.memory_adapter import MemoryInventoryLedger
    from marketplace.payments.gateway import reset_gateway

    set_ledger(MemoryInventoryLedger())
    set_registry(MemoryActiveSessionRegistry())
    reset_catalogue()
    reset_directory()
    reset_gateway()
    reset_policy()

    yield


@pytest.fixture(autouse=True)
def run_around_tests():
    """Fixture to automatically cleanup infrastructure after every test"""
    yield

    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    current_domain.event_store.store._data_reset()


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------
@pytest.fixture()
def ledger():
    from marketplace.inventory.ledger import get_ledger

    return get_ledger()


@pytest.fixture()
def catalogue():
    from marketplace.catalogue.listings import get_catalogue

    return get_catalogue()


@pytest.fixture()
def directory():
    from marketplace.identity.directory import get_directory

    return get_directory()


@pytest.fixture()
def gateway():
    from marketplace.payments.gateway import get_gateway

    return get_gateway()


@pytest.fixture()
def registry():
    from marketplace.checkout.active_sessions import get_registry

    return get_registry()


# ---------------------------------------------------------------------------
# Seed data: one buyer, two sellers, a listing from each plus a service
# ---------------------------------------------------------------------------
@pytest.fixture()
def seeded(ledger, catalogue, directory):
    directory.register("buyer-001", "Nur Aisyah", "aisyah@example.com", phone="+60123456789")
    directory.register("buyer-002", "Daniel Lim", "daniel@example.com")
    directory.register("seller-a", "Hafiz", "hafiz@example.com", shop_name="Hafiz Books")
    directory.register("seller-b", "Mei Ling", "meiling@example.com", shop_name="Mei's Crafts")

    catalogue.add_listing("listing-a1", "Calculus Textbook", 100.0, "seller-a", seller_name="Hafiz Books")
    catalogue.add_listing("listing-a2", "Lecture Notes", 8.0, "seller-a", seller_name="Hafiz Books")
    catalogue.add_listing("listing-b1", "Knitted Scarf", 50.0, "seller-b", seller_name="Mei's Crafts")
    catalogue.add_listing(
        "service-b1",
        "Tutoring Hour",
        30.0,
        "seller-b",
        seller_name="Mei's Crafts",
        listing_type="service",
    )

    ledger.set_stock("listing-a1", 5)
    ledger.set_stock("listing-a2", 10)
    ledger.set_stock("listing-b1", 5)

    return {"buyer": "buyer-001", "sellers": ("seller-a", "seller-b")}


CAMPUS_ADDRESS = {
    "address_type": "campus",
    "recipient_name": "Nur Aisyah",
    "campus": "Main Campus",
    "building": "Block C",
    "room": "C-201",
}

PERSONAL_ADDRESS = {
    "address_type": "personal",
    "recipient_name": "Nur Aisyah",
    "street": "12 Jalan Universiti",
    "city": "Kuala Lumpur",
    "postcode": "50603",
}


@pytest.fixture()
def campus_address():
    return dict(CAMPUS_ADDRESS)


@pytest.fixture()
def personal_address():
    return dict(PERSONAL_ADDRESS)


@pytest.fixture()
def start_checkout(seeded):
    """Return a callable that opens a checkout session and returns its id."""
    from protean import current_domain

    from marketplace.checkout.session.creation import CreateCheckoutSession

    def _start(items=None, user_id="buyer-001", **fields):
        items = items or [
            {"listing_id": "listing-a1", "quantity": 1},
            {"listing_id": "listing-b1", "quantity": 1},
        ]
        command = CreateCheckoutSession(user_id=user_id, items=json.dumps(items), **fields)
        return current_domain.process(command, asynchronous=False)

    return _start


@pytest.fixture()
def ready_checkout(start_checkout, personal_address):
    """A session with delivery address set, ready for orders to be placed."""
    from protean import current_domain

    from marketplace.checkout.session.modification import UpdateCheckoutSession

    def _ready(items=None, payment_method=None, address=None, **fields):
        session_id = start_checkout(items=items, **fields)
        current_domain.process(
            UpdateCheckoutSession(
                session_id=session_id,
                delivery_address=json.dumps(address or personal_address),
                payment_method=payment_method,
            ),
            asynchronous=False,
        )
        return session_id

    return _ready
