"""Application tests for CreateCheckoutSession: snapshot, holds and the single active session."""

import json
from datetime import timedelta

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from marketplace.checkout.session.creation import CreateCheckoutSession
from marketplace.checkout.session.session import CheckoutSession, SessionStatus
from marketplace.errors import InsufficientStockError, ItemUnavailableError
from marketplace.inventory.reservation.reservation import ReservationStatus, StockReservation


def _get(session_id):
    return current_domain.repository_for(CheckoutSession).get(session_id)


class TestCreateCheckoutSession:
    def test_snapshots_items_and_groups_by_seller(self, start_checkout):
        session = _get(start_checkout())

        assert session.status == SessionStatus.PENDING.value
        assert len(session.items) == 2
        assert len(session.seller_groups) == 2
        item = session.item_for("listing-a1")
        assert item.unit_price == 100.0
        assert item.seller_name == "Hafiz Books"
        assert item.available_stock == 5

    def test_defaults_to_delivery_and_cash(self, start_checkout):
        session = _get(start_checkout())
        assert session.delivery_method == "delivery"
        assert session.payment_method == "cod"

    def test_expires_after_ttl(self, start_checkout):
        session = _get(start_checkout())
        assert session.expires_at - session.created_at == timedelta(minutes=10)

    def test_holds_stock_for_products(self, start_checkout, ledger):
        session = _get(start_checkout(items=[{"listing_id": "listing-a1", "quantity": 2}]))

        assert ledger.get_availability("listing-a1") == 3
        assert len(session.stock_reservations) == 1
        reservation = current_domain.repository_for(StockReservation).get(
            session.stock_reservations[0].reservation_id
        )
        assert reservation.quantity == 2
        assert reservation.session_id == str(session.id)

    def test_services_are_not_held(self, start_checkout):
        session = _get(start_checkout(items=[{"listing_id": "service-b1", "quantity": 1}]))

        assert len(session.stock_reservations) == 0
        assert session.item_for("service-b1").available_stock is None

    def test_repeated_listing_lines_are_merged(self, start_checkout, ledger):
        session = _get(
            start_checkout(
                items=[
                    {"listing_id": "listing-a1", "quantity": 1},
                    {"listing_id": "listing-a1", "quantity": 2},
                ]
            )
        )
        assert session.item_for("listing-a1").quantity == 3
        assert ledger.get_availability("listing-a1") == 2

    def test_applies_listing_discount_per_unit(self, start_checkout, catalogue):
        catalogue.add_listing("listing-a3", "Used Textbook", 40.0, "seller-a", discount=5.0)
        from marketplace.inventory.ledger import get_ledger

        get_ledger().set_stock("listing-a3", 4)

        session = _get(start_checkout(items=[{"listing_id": "listing-a3", "quantity": 2}]))

        assert session.item_for("listing-a3").discount == 10.0
        assert session.seller_groups[0].subtotal == 70.0

    def test_insufficient_stock_holds_nothing(self, start_checkout, ledger):
        with pytest.raises(InsufficientStockError) as exc:
            start_checkout(
                items=[
                    {"listing_id": "listing-a1", "quantity": 1},
                    {"listing_id": "listing-b1", "quantity": 6},
                ]
            )

        assert exc.value.listing_id == "listing-b1"
        assert exc.value.requested == 6
        assert exc.value.available == 5
        assert ledger.get_availability("listing-a1") == 5

    def test_inactive_listing_is_unavailable(self, start_checkout, catalogue):
        catalogue.deactivate("listing-b1")
        with pytest.raises(ItemUnavailableError) as exc:
            start_checkout()
        assert exc.value.listing_id == "listing-b1"

    def test_unknown_listing_is_unavailable(self, start_checkout):
        with pytest.raises(ItemUnavailableError):
            start_checkout(items=[{"listing_id": "listing-zz", "quantity": 1}])

    def test_empty_items_rejected(self, seeded):
        with pytest.raises(ValidationError):
            current_domain.process(
                CreateCheckoutSession(user_id="buyer-001", items=json.dumps([])),
                asynchronous=False,
            )

    def test_zero_quantity_rejected(self, start_checkout):
        with pytest.raises(ValidationError):
            start_checkout(items=[{"listing_id": "listing-a1", "quantity": 0}])

    def test_unavailable_delivery_method_rejected_before_holding(self, start_checkout, directory, ledger):
        from marketplace.checkout.pricing.engine import DeliveryCategorySettings, SellerDeliverySettings

        directory.set_delivery_settings("seller-b", SellerDeliverySettings(pickup=DeliveryCategorySettings(enabled=False)))

        with pytest.raises(ValidationError):
            start_checkout(delivery_method="meetup")
        assert ledger.get_availability("listing-a1") == 5


class TestSingleActiveSession:
    def test_new_session_supersedes_previous(self, start_checkout, ledger, registry):
        first_id = start_checkout(items=[{"listing_id": "listing-a1", "quantity": 3}])
        assert ledger.get_availability("listing-a1") == 2

        second_id = start_checkout(items=[{"listing_id": "listing-a1", "quantity": 4}])

        first = _get(first_id)
        assert first.status == SessionStatus.CANCELLED.value
        assert first.cancel_reason == "superseded"
        assert ledger.get_availability("listing-a1") == 1
        assert registry.current("buyer-001") == second_id

    def test_other_buyers_are_independent(self, start_checkout, registry):
        first_id = start_checkout(user_id="buyer-001")
        second_id = start_checkout(user_id="buyer-002")

        assert _get(first_id).status == SessionStatus.PENDING.value
        assert registry.current("buyer-001") == first_id
        assert registry.current("buyer-002") == second_id

    def test_failed_stock_check_leaves_previous_untouched(self, start_checkout, ledger, registry):
        first_id = start_checkout(items=[{"listing_id": "listing-a1", "quantity": 2}])

        with pytest.raises(InsufficientStockError):
            start_checkout(items=[{"listing_id": "listing-b1", "quantity": 99}])

        first = _get(first_id)
        assert first.status == SessionStatus.PENDING.value
        hold = current_domain.repository_for(StockReservation).get(first.stock_reservations[0].reservation_id)
        assert hold.status == ReservationStatus.ACTIVE.value
        assert ledger.get_availability("listing-a1") == 3
        assert ledger.get_availability("listing-b1") == 5
        assert registry.current("buyer-001") == first_id

    def test_previous_holds_count_towards_new_stock_check(self, start_checkout, ledger):
        first_id = start_checkout(items=[{"listing_id": "listing-a1", "quantity": 4}])

        with pytest.raises(InsufficientStockError) as exc:
            start_checkout(items=[{"listing_id": "listing-a1", "quantity": 6}])

        assert exc.value.available == 5
        assert _get(first_id).status == SessionStatus.PENDING.value
        assert ledger.get_availability("listing-a1") == 1

    def test_unavailable_listing_leaves_previous_untouched(self, start_checkout, ledger, registry):
        first_id = start_checkout(items=[{"listing_id": "listing-a1", "quantity": 2}])

        with pytest.raises(ItemUnavailableError):
            start_checkout(items=[{"listing_id": "listing-zz", "quantity": 1}])

        assert _get(first_id).status == SessionStatus.PENDING.value
        assert ledger.get_availability("listing-a1") == 3
        assert registry.current("buyer-001") == first_id

    def test_pricing_error_leaves_previous_untouched(self, start_checkout, directory, ledger, registry):
        from marketplace.checkout.pricing.engine import DeliveryCategorySettings, SellerDeliverySettings

        first_id = start_checkout(items=[{"listing_id": "listing-a1", "quantity": 2}])
        directory.set_delivery_settings("seller-a", SellerDeliverySettings(pickup=DeliveryCategorySettings(enabled=False)))

        with pytest.raises(ValidationError):
            start_checkout(items=[{"listing_id": "listing-a1", "quantity": 1}], delivery_method="meetup")

        assert _get(first_id).status == SessionStatus.PENDING.value
        assert ledger.get_availability("listing-a1") == 3
        assert registry.current("buyer-001") == first_id
