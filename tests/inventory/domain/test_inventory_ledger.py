"""Tests for the inventory ledger adapters: conditional decrements and hold settlement.

Every test runs against the in-memory ledger and the SQL ledger on a SQLite
file, so both honour the same contract.
"""

import threading

import pytest

from marketplace.inventory.ledger.memory_adapter import MemoryInventoryLedger
from marketplace.inventory.ledger.port import HOLD_COMMITTED, HOLD_RELEASED
from marketplace.inventory.ledger.sql_adapter import SqlInventoryLedger


@pytest.fixture(params=["memory", "sql"])
def stock_ledger(request, tmp_path):
    if request.param == "memory":
        yield MemoryInventoryLedger()
        return

    ledger = SqlInventoryLedger(f"sqlite:///{tmp_path / 'ledger.db'}")
    ledger.create_tables()
    yield ledger
    ledger.drop_tables()
    ledger.engine.dispose()


class TestAvailability:
    def test_unknown_listing_has_nothing(self, stock_ledger):
        assert stock_ledger.get_availability("listing-x") == 0

    def test_set_stock(self, stock_ledger):
        stock_ledger.set_stock("listing-1", 7)
        stock_ledger.set_stock("listing-1", 4)
        assert stock_ledger.get_availability("listing-1") == 4

    def test_negative_stock_rejected(self, stock_ledger):
        with pytest.raises(ValueError):
            stock_ledger.set_stock("listing-1", -1)


class TestConditionalDecrement:
    def test_succeeds_when_enough(self, stock_ledger):
        stock_ledger.set_stock("listing-1", 3)
        assert stock_ledger.atomic_decrement("listing-1", 3) is True
        assert stock_ledger.get_availability("listing-1") == 0

    def test_refuses_when_short(self, stock_ledger):
        stock_ledger.set_stock("listing-1", 2)
        assert stock_ledger.atomic_decrement("listing-1", 3) is False
        assert stock_ledger.get_availability("listing-1") == 2

    def test_refuses_unknown_listing(self, stock_ledger):
        assert stock_ledger.atomic_decrement("listing-x", 1) is False

    def test_increment_creates_or_adds(self, stock_ledger):
        stock_ledger.atomic_increment("listing-2", 2)
        stock_ledger.atomic_increment("listing-2", 3)
        assert stock_ledger.get_availability("listing-2") == 5


class TestHoldSettlement:
    def test_release_restores_once(self, stock_ledger):
        stock_ledger.set_stock("listing-1", 5)
        stock_ledger.atomic_decrement("listing-1", 2)

        assert stock_ledger.release_hold("res-1", "listing-1", 2) is True
        assert stock_ledger.release_hold("res-1", "listing-1", 2) is False

        assert stock_ledger.get_availability("listing-1") == 5
        assert stock_ledger.hold_outcome("res-1") == HOLD_RELEASED

    def test_commit_is_idempotent(self, stock_ledger):
        assert stock_ledger.commit_hold("res-1") is True
        assert stock_ledger.commit_hold("res-1") is True
        assert stock_ledger.hold_outcome("res-1") == HOLD_COMMITTED

    def test_committed_hold_cannot_be_released(self, stock_ledger):
        stock_ledger.set_stock("listing-1", 5)
        stock_ledger.atomic_decrement("listing-1", 2)
        stock_ledger.commit_hold("res-1")

        assert stock_ledger.release_hold("res-1", "listing-1", 2) is False
        assert stock_ledger.get_availability("listing-1") == 3

    def test_released_hold_cannot_be_committed(self, stock_ledger):
        stock_ledger.set_stock("listing-1", 5)
        stock_ledger.atomic_decrement("listing-1", 2)
        stock_ledger.release_hold("res-1", "listing-1", 2)

        assert stock_ledger.commit_hold("res-1") is False

    def test_unsettled_hold_has_no_outcome(self, stock_ledger):
        assert stock_ledger.hold_outcome("res-unknown") is None


class TestConcurrency:
    def _race(self, workers, action):
        barrier = threading.Barrier(workers)
        results = []
        lock = threading.Lock()

        def run():
            barrier.wait()
            outcome = action()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=run) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results

    def test_last_unit_goes_to_exactly_one_buyer(self, stock_ledger):
        stock_ledger.set_stock("listing-1", 1)

        results = self._race(5, lambda: stock_ledger.atomic_decrement("listing-1", 1))

        assert results.count(True) == 1
        assert stock_ledger.get_availability("listing-1") == 0

    def test_racing_releases_restore_once(self, stock_ledger):
        stock_ledger.set_stock("listing-1", 0)

        results = self._race(5, lambda: stock_ledger.release_hold("res-1", "listing-1", 1))

        assert results.count(True) == 1
        assert stock_ledger.get_availability("listing-1") == 1
