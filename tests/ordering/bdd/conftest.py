"""Shared BDD fixtures and step definitions for orders."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from marketplace.errors import InvalidStatusTransitionError
from marketplace.ordering.order.order import Order
from marketplace.ordering.order.placement import PlaceOrders
from marketplace.ordering.order.status import UpdateOrderStatus

_LISTING_OF_SELLER = {"seller-a": "listing-a1", "seller-b": "listing-b1"}


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


@pytest.fixture()
def update_order():
    def _update(order_id, actor_id, new_status):
        command = UpdateOrderStatus(order_id=order_id, new_status=new_status, actor_id=actor_id)
        return current_domain.process(command, asynchronous=False)

    return _update


def _load(order_id):
    return current_domain.repository_for(Order).get(order_id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a placed cash on delivery order from "{seller_id}"'), target_fixture="order_id")
def _(ready_checkout, seller_id):
    session_id = ready_checkout(items=[{"listing_id": _LISTING_OF_SELLER[seller_id], "quantity": 1}])
    result = current_domain.process(PlaceOrders(session_id=session_id), asynchronous=False)
    return result["order_ids"][0]


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}"'))
def _(order_id, status):
    assert _load(order_id).status == status


@then(parsers.cfparse('the order has a "{field_name}" timestamp'))
def _(order_id, field_name):
    assert getattr(_load(order_id), field_name) is not None


@then(parsers.cfparse('the status history reads "{statuses}"'))
def _(order_id, statuses):
    expected = [status.strip() for status in statuses.split(",")]
    assert [entry.status for entry in _load(order_id).status_history] == expected


@then("the change is refused as an invalid transition")
def _(error):
    assert isinstance(error["exc"], InvalidStatusTransitionError)


@then("the order cannot be cancelled again")
def _(order_id, update_order):
    assert _load(order_id).can_cancel is False
    with pytest.raises(InvalidStatusTransitionError):
        update_order(order_id, "buyer-001", "cancelled")
