"""Application tests for StockReservationManager."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from marketplace.errors import InsufficientStockError
from marketplace.inventory.reservation.manager import StockReservationManager
from marketplace.inventory.reservation.reservation import ReservationStatus, StockReservation


@pytest.fixture()
def manager(ledger):
    ledger.set_stock("listing-1", 3)
    ledger.set_stock("listing-2", 1)
    return StockReservationManager()


class TestReserve:
    def test_holds_stock_and_persists(self, manager, ledger):
        reservation = manager.reserve("listing-1", 2, session_id="session-1")

        assert ledger.get_availability("listing-1") == 1
        stored = current_domain.repository_for(StockReservation).get(reservation.id)
        assert stored.status == ReservationStatus.ACTIVE.value
        assert stored.session_id == "session-1"

    def test_insufficient_stock(self, manager, ledger):
        manager.reserve("listing-1", 3, session_id="session-a")

        with pytest.raises(InsufficientStockError) as exc:
            manager.reserve("listing-1", 1, session_id="session-b")

        assert exc.value.details == {"listing_id": "listing-1", "requested": 1, "available": 0}

    def test_quantity_must_be_positive(self, manager):
        with pytest.raises(ValidationError):
            manager.reserve("listing-1", 0)

    def test_reserve_many_is_all_or_nothing(self, manager, ledger):
        with pytest.raises(InsufficientStockError):
            manager.reserve_many([("listing-1", 2), ("listing-2", 2)], session_id="session-1")

        assert ledger.get_availability("listing-1") == 3
        assert ledger.get_availability("listing-2") == 1


class TestRelease:
    def test_release_restores_stock(self, manager, ledger):
        reservation = manager.reserve("listing-1", 2)

        assert manager.release(reservation, reason="cancelled") is True

        assert ledger.get_availability("listing-1") == 3
        stored = manager.get(reservation.id)
        assert stored.status == ReservationStatus.RELEASED.value
        assert stored.release_reason == "cancelled"

    def test_release_is_idempotent(self, manager, ledger):
        reservation = manager.reserve("listing-1", 2)

        manager.release(str(reservation.id), reason="cancelled")
        assert manager.release(str(reservation.id), reason="expired") is False

        assert ledger.get_availability("listing-1") == 3
        assert manager.get(reservation.id).release_reason == "cancelled"

    def test_release_for_session(self, manager, ledger):
        manager.reserve("listing-1", 1, session_id="session-1")
        manager.reserve("listing-2", 1, session_id="session-1")
        manager.reserve("listing-1", 1, session_id="session-2")

        assert manager.release_for_session("session-1") == 2
        assert ledger.get_availability("listing-1") == 2
        assert ledger.get_availability("listing-2") == 1
        assert len(manager.active_for_session("session-2")) == 1

    def test_stale_copy_release_is_a_no_op(self, manager, ledger):
        reservation = manager.reserve("listing-1", 2)
        stale = manager.get(reservation.id)

        manager.release(reservation)
        assert manager.release(stale) is False
        assert ledger.get_availability("listing-1") == 3


class TestCommit:
    def test_commit_makes_hold_permanent(self, manager, ledger):
        reservation = manager.reserve("listing-1", 2)

        committed = manager.commit(reservation.id)

        assert committed.status == ReservationStatus.COMMITTED.value
        assert committed.committed_at is not None
        assert ledger.get_availability("listing-1") == 1

    def test_commit_twice_is_a_no_op(self, manager):
        reservation = manager.reserve("listing-1", 2)
        manager.commit(reservation.id)
        assert manager.commit(reservation.id).status == ReservationStatus.COMMITTED.value

    def test_committed_reservation_is_not_released(self, manager, ledger):
        reservation = manager.reserve("listing-1", 2)
        manager.commit(reservation.id)

        assert manager.release(reservation.id) is False
        assert ledger.get_availability("listing-1") == 1

    def test_released_reservation_cannot_be_committed(self, manager):
        reservation = manager.reserve("listing-1", 2)
        manager.release(reservation)

        with pytest.raises(ValidationError):
            manager.commit(reservation.id)

    def test_is_committable(self, manager):
        held = manager.reserve("listing-1", 1)
        released = manager.reserve("listing-1", 1)
        manager.release(released)

        assert manager.is_committable(held) is True
        assert manager.is_committable(manager.get(released.id)) is False
