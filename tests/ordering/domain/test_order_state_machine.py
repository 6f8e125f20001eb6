"""Tests for the Order state machine: skips, terminal states and history."""

from datetime import UTC, datetime

import pytest

from marketplace.errors import InvalidStatusTransitionError
from marketplace.ordering.order.order import (
    BuyerSnapshot,
    Order,
    OrderItem,
    OrderStatus,
    SellerSnapshot,
    is_valid_transition,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

_PATHS = {
    OrderStatus.PENDING: [],
    OrderStatus.CONFIRMED: [OrderStatus.CONFIRMED],
    OrderStatus.PROCESSING: [OrderStatus.PROCESSING],
    OrderStatus.SHIPPED: [OrderStatus.CONFIRMED, OrderStatus.SHIPPED],
    OrderStatus.DELIVERED: [OrderStatus.PROCESSING, OrderStatus.DELIVERED],
    OrderStatus.COMPLETED: [OrderStatus.CONFIRMED, OrderStatus.COMPLETED],
    OrderStatus.CANCELLED: [OrderStatus.CANCELLED],
}


def _make_order():
    order = Order.place(
        order_number="ORD-20260302-AB12CD",
        checkout_session_id="session-1",
        buyer=BuyerSnapshot(user_id="buyer-001", name="Nur Aisyah", email="aisyah@example.com"),
        seller=SellerSnapshot(user_id="seller-a", name="Hafiz", email="hafiz@example.com", shop_name="Hafiz Books"),
        items=[
            OrderItem(
                listing_id="listing-a1",
                listing_name="Calculus Textbook",
                unit_price=100.0,
                quantity=1,
            )
        ],
        shipping_fee=5.0,
        now=NOW,
    )
    order._events.clear()
    return order


def _order_at(status):
    order = _make_order()
    for step in _PATHS[status]:
        order.update_status(step.value, actor_id="seller-a", now=NOW)
    order._events.clear()
    return order


class TestValidTransitions:
    @pytest.mark.parametrize(
        "current, target",
        [
            ("pending", "confirmed"),
            ("pending", "processing"),
            ("pending", "cancelled"),
            ("confirmed", "processing"),
            ("confirmed", "shipped"),
            ("confirmed", "completed"),
            ("confirmed", "cancelled"),
            ("processing", "shipped"),
            ("processing", "delivered"),
            ("processing", "completed"),
            ("processing", "cancelled"),
            ("shipped", "delivered"),
            ("shipped", "completed"),
            ("delivered", "completed"),
        ],
    )
    def test_allowed(self, current, target):
        assert is_valid_transition(current, target)
        order = _order_at(OrderStatus(current))

        order.update_status(target, actor_id="seller-a", now=NOW)

        assert order.status == target

    def test_in_person_handover_skips_to_completed(self):
        order = _order_at(OrderStatus.CONFIRMED)

        order.update_status("completed", note="Handed over at the library", actor_id="seller-a", now=NOW)

        assert order.status == OrderStatus.COMPLETED.value
        assert order.completed_at == NOW
        assert order.shipped_at is None


class TestInvalidTransitions:
    @pytest.mark.parametrize(
        "current, target",
        [
            ("pending", "shipped"),
            ("pending", "completed"),
            ("confirmed", "pending"),
            ("shipped", "cancelled"),
            ("shipped", "processing"),
            ("delivered", "cancelled"),
            ("delivered", "shipped"),
        ],
    )
    def test_rejected_without_change(self, current, target):
        order = _order_at(OrderStatus(current))
        history_before = len(order.status_history)

        with pytest.raises(InvalidStatusTransitionError) as exc:
            order.update_status(target, actor_id="seller-a", now=NOW)

        assert exc.value.current == current
        assert exc.value.target == target
        assert order.status == current
        assert len(order.status_history) == history_before
        assert order._events == []

    @pytest.mark.parametrize("terminal", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
    @pytest.mark.parametrize("target", [status.value for status in OrderStatus])
    def test_terminal_states_accept_nothing(self, terminal, target):
        order = _order_at(terminal)

        with pytest.raises(InvalidStatusTransitionError):
            order.update_status(target, actor_id="admin-1", now=NOW)
        assert order.status == terminal.value

    @pytest.mark.parametrize("target", [status.value for status in OrderStatus])
    def test_refunded_accepts_nothing(self, target):
        assert not is_valid_transition("refunded", target)

    def test_completed_cannot_go_back_to_shipped(self):
        order = _order_at(OrderStatus.COMPLETED)
        with pytest.raises(InvalidStatusTransitionError):
            order.update_status("shipped", actor_id="seller-a", now=NOW)


class TestHistoryAndMilestones:
    def test_placement_starts_history(self):
        order = _make_order()
        assert [entry.status for entry in order.status_history] == ["pending"]
        assert order.status_history[0].updated_by == "buyer-001"

    def test_each_step_appends(self):
        order = _make_order()
        order.update_status("confirmed", note="Seller accepted", actor_id="seller-a", now=NOW)
        order.update_status("shipped", note="Posted", actor_id="seller-a", now=NOW)

        assert [entry.status for entry in order.status_history] == ["pending", "confirmed", "shipped"]
        latest = order.status_history[-1]
        assert latest.note == "Posted"
        assert latest.updated_by == "seller-a"
        assert latest.updated_at == NOW

    def test_stamps_milestones(self):
        order = _make_order()
        order.update_status("processing", actor_id="seller-a", now=NOW)
        order.update_status("delivered", actor_id="seller-a", now=NOW)

        assert order.processing_at == NOW
        assert order.delivered_at == NOW
        assert order.confirmed_at is None

    def test_raises_status_changed_event(self):
        order = _make_order()
        order.update_status("confirmed", actor_id="seller-a", now=NOW)

        event = order._events[-1]
        assert event.__class__.__name__ == "OrderStatusChanged"
        assert event.previous_status == "pending"
        assert event.new_status == "confirmed"

    def test_unknown_status_rejected(self):
        from protean.exceptions import ValidationError

        order = _make_order()
        with pytest.raises(ValidationError):
            order.update_status("teleported", actor_id="seller-a", now=NOW)


class TestCancellation:
    @pytest.mark.parametrize(
        "status, allowed",
        [
            (OrderStatus.PENDING, True),
            (OrderStatus.CONFIRMED, True),
            (OrderStatus.PROCESSING, False),
            (OrderStatus.SHIPPED, False),
            (OrderStatus.COMPLETED, False),
        ],
    )
    def test_can_cancel(self, status, allowed):
        assert _order_at(status).can_cancel is allowed
