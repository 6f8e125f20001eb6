"""Application tests for cancelling checkout sessions."""

import pytest
from protean import current_domain

from marketplace.checkout.session.cancellation import CancelCheckoutSession
from marketplace.checkout.session.session import CheckoutSession, SessionStatus
from marketplace.errors import SessionNotModifiableError
from marketplace.inventory.reservation.reservation import ReservationStatus, StockReservation
from marketplace.ordering.order.placement import PlaceOrders


def _cancel(session_id, **fields):
    return current_domain.process(CancelCheckoutSession(session_id=session_id, **fields), asynchronous=False)


class TestCancelCheckoutSession:
    def test_releases_held_stock(self, start_checkout, ledger):
        session_id = start_checkout(items=[{"listing_id": "listing-a1", "quantity": 3}])

        status = _cancel(session_id)

        assert status == SessionStatus.CANCELLED.value
        assert ledger.get_availability("listing-a1") == 5
        session = current_domain.repository_for(CheckoutSession).get(session_id)
        reservation = current_domain.repository_for(StockReservation).get(
            session.stock_reservations[0].reservation_id
        )
        assert reservation.status == ReservationStatus.RELEASED.value
        assert reservation.release_reason == "cancelled_by_user"

    def test_frees_active_slot(self, start_checkout, registry):
        session_id = start_checkout()
        _cancel(session_id)
        assert registry.current("buyer-001") is None

    def test_cancelling_twice_restores_stock_once(self, start_checkout, ledger):
        session_id = start_checkout(items=[{"listing_id": "listing-a1", "quantity": 2}])

        _cancel(session_id)
        _cancel(session_id)

        assert ledger.get_availability("listing-a1") == 5

    def test_records_reason(self, start_checkout):
        session_id = start_checkout()
        _cancel(session_id, reason="changed_mind")

        session = current_domain.repository_for(CheckoutSession).get(session_id)
        assert session.cancel_reason == "changed_mind"

    def test_completed_session_cannot_be_cancelled(self, ready_checkout):
        session_id = ready_checkout()
        current_domain.process(PlaceOrders(session_id=session_id), asynchronous=False)

        with pytest.raises(SessionNotModifiableError):
            _cancel(session_id)
