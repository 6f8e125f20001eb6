"""Shared BDD fixtures and step definitions for checkout."""

import json

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then, when

from marketplace.checkout.session.creation import CreateCheckoutSession
from marketplace.checkout.session.session import CheckoutSession
from marketplace.errors import InsufficientStockError


@pytest.fixture()
def checkout():
    """Ids produced along the scenario: the session and any follow-up attempt."""
    return {"session_id": None, "attempt": None}


@pytest.fixture()
def error():
    """Container for captured domain errors."""
    return {"exc": None}


def load(checkout):
    return current_domain.repository_for(CheckoutSession).get(checkout["session_id"])


def start(user_id, items):
    command = CreateCheckoutSession(user_id=user_id, items=json.dumps(items))
    return current_domain.process(command, asynchronous=False)


@pytest.fixture()
def load_session():
    return load


@pytest.fixture()
def start_session():
    return start


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("the marketplace has two sellers with stocked listings")
def _(seeded):
    return seeded


@given(parsers.cfparse('"{listing_id}" has {quantity:d} units in stock'))
def _(seeded, ledger, listing_id, quantity):
    ledger.set_stock(listing_id, quantity)


# ---------------------------------------------------------------------------
# Shared when steps
# ---------------------------------------------------------------------------
@when(
    parsers.re(r'buyer "(?P<user_id>[^"]+)" checks out (?P<quantity>\d+) of "(?P<listing_id>[^"]+)"$'),
    converters={"quantity": int},
)
def _(checkout, user_id, quantity, listing_id):
    checkout["session_id"] = start(user_id, [{"listing_id": listing_id, "quantity": quantity}])


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('"{listing_id}" has {quantity:d} units available'))
def _(ledger, listing_id, quantity):
    assert ledger.get_availability(listing_id) == quantity


@then(parsers.cfparse("the session total is {total:f}"))
def _(checkout, total):
    assert load(checkout).pricing.total_amount == pytest.approx(total, abs=0.01)


@then(parsers.cfparse('the session is "{status}"'))
def _(checkout, status):
    assert load(checkout).status == status


@then("the checkout is refused for insufficient stock")
def _(checkout, error):
    assert isinstance(error["exc"], InsufficientStockError)
    assert checkout["attempt"] is None


@then("the checkout succeeds")
def _(checkout, error):
    assert error["exc"] is None
    assert checkout["attempt"] is not None
