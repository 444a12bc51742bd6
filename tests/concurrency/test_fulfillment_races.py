"""
Concurrent requests against the same entity or ledger cell.

Each worker goes through its own FulfillmentCoordinator call, so each runs
in its own session and transaction.  On SQLite writers serialize on
BEGIN IMMEDIATE; on PostgreSQL (DATABASE_URL) on row locks.

Expected Behavior:
- Two concurrent "delivered" requests: one history row, both see delivered
- Concurrent debits never take a cell below zero
- Concurrent first credits open the cell exactly once
- Concurrent production-from-line requests: exactly one succeeds
- Concurrent low-stock crossings: one outstanding suggestion
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from fulfillment_kernel.domain.actor import Role
from fulfillment_kernel.exceptions import DuplicateProductionError, InsufficientStockError
from tests.conftest import make_actor

pytestmark = [pytest.mark.slow_locks]


def run_concurrently(fns) -> list:
    """Start every callable at the same moment; return results or raised exceptions."""
    barrier = Barrier(len(fns))

    def worker(fn):
        barrier.wait()
        try:
            return fn()
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(fns)) as pool:
        return list(pool.map(worker, fns))


class TestConcurrentTransitions:

    def test_double_delivery_records_one_change(self, coordinator, order_flow):
        order_id = order_flow(until="in_transit")
        carrier_a = make_actor(Role.CARRIER)
        carrier_b = make_actor(Role.CARRIER)

        results = run_concurrently([
            lambda: coordinator.transition(carrier_a, "order", order_id, "delivered"),
            lambda: coordinator.transition(carrier_b, "order", order_id, "delivered"),
        ])

        assert not [r for r in results if isinstance(r, Exception)], results
        assert {r.status for r in results} == {"delivered"}
        assert sorted(r.changed for r in results) == [False, True]
        assert len({r.history_id for r in results}) == 1

        history = coordinator.history(carrier_a, "order", order_id)
        delivered = [h for h in history if h.new_status == "delivered"]
        assert len(delivered) == 1
        assert delivered[0].old_status == "in_transit"
        assert coordinator.replay_status(carrier_a, "order", order_id) == "delivered"


class TestConcurrentLedger:

    def test_debits_never_go_negative(self, coordinator, catalog, warehouse):
        coordinator.ledger_credit(warehouse, catalog.p1, catalog.w1, 10)

        results = run_concurrently([
            lambda: coordinator.ledger_debit(warehouse, catalog.p1, catalog.w1, 3)
            for _ in range(8)
        ])

        succeeded = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, InsufficientStockError)]
        assert len(succeeded) == 3
        assert len(rejected) == 5
        assert coordinator.ledger_query(warehouse, catalog.p1, catalog.w1) == 1

        movements = coordinator.movements(warehouse, product_id=catalog.p1, warehouse_id=catalog.w1)
        assert sum(m.delta for m in movements) == 1
        assert all(m.quantity_after >= 0 for m in movements)

    def test_first_credits_open_one_cell(self, coordinator, catalog, warehouse):
        results = run_concurrently([
            lambda: coordinator.ledger_credit(warehouse, catalog.p2, catalog.w2, 5)
            for _ in range(6)
        ])

        assert not [r for r in results if isinstance(r, Exception)], results
        assert coordinator.ledger_query(warehouse, catalog.p2, catalog.w2) == 30
        assert sorted(r.quantity_after for r in results) == [5, 10, 15, 20, 25, 30]

    def test_one_suggestion_per_crossing(self, coordinator, catalog, warehouse):
        coordinator.ledger_credit(warehouse, catalog.p1, catalog.w1, 20)

        run_concurrently([
            lambda: coordinator.ledger_debit(warehouse, catalog.p1, catalog.w1, 4)
            for _ in range(4)
        ])

        assert coordinator.ledger_query(warehouse, catalog.p1, catalog.w1) == 4
        assert len(coordinator.pending_suggestions(warehouse, warehouse_id=catalog.w1)) == 1


class TestConcurrentTraceability:

    def test_one_production_per_line(self, coordinator, approved_po, factory):
        detail_id = approved_po().detail_ids[0]

        results = run_concurrently([
            lambda: coordinator.create_production_from_detail(factory, detail_id)
            for _ in range(4)
        ])

        created = [r for r in results if not isinstance(r, Exception)]
        duplicates = [r for r in results if isinstance(r, DuplicateProductionError)]
        assert len(created) == 1
        assert len(duplicates) == 3
        assert [p.id for p in coordinator.detail_lineage(factory, detail_id)] == [created[0].id]
