"""
Tests for the ORM immutability listeners (fulfillment_kernel.db.immutability).

Covers:
- History rows and inventory movements reject UPDATE and DELETE
- Workflow entities, their line items and shipments reject DELETE
- Listener registration is idempotent and reversible
"""

import pytest
from sqlalchemy import event, select
from sqlalchemy.orm import Session

from fulfillment_kernel.db.engine import session_scope
from fulfillment_kernel.db.immutability import (
    _block_delete,
    _block_deletes_before_flush,
    _block_update,
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from fulfillment_kernel.domain.dtos import OrderLineInput
from fulfillment_kernel.exceptions import ImmutabilityViolationError
from fulfillment_kernel.models import (
    InventoryMovement,
    InventoryRecord,
    Order,
    OrderLine,
    PurchaseOrderDetail,
    Shipment,
    StatusHistory,
)


@pytest.fixture
def delivered_order(order_flow):
    return order_flow()


class TestAppendOnly:

    def test_history_row_cannot_be_edited(self, session_factory, delivered_order):
        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                row = session.execute(
                    select(StatusHistory).where(StatusHistory.entity_id == delivered_order).limit(1)
                ).scalar_one()
                row.new_status = "cancelled"

    def test_history_row_cannot_be_deleted(self, session_factory, delivered_order):
        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                row = session.execute(
                    select(StatusHistory).where(StatusHistory.entity_id == delivered_order).limit(1)
                ).scalar_one()
                session.delete(row)

    def test_movement_cannot_be_edited(self, session_factory, coordinator, catalog, warehouse):
        coordinator.ledger_credit(warehouse, catalog.p1, catalog.w1, 5)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            with session_scope(session_factory) as session:
                movement = session.execute(select(InventoryMovement)).scalars().first()
                movement.delta = 500
        assert exc_info.value.entity_type == "InventoryMovement"
        assert coordinator.ledger_query(warehouse, catalog.p1, catalog.w1) == 5

    def test_violation_is_logged(self, session_factory, delivered_order, captured_logs):
        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                row = session.execute(select(StatusHistory).limit(1)).scalar_one()
                row.note = "edited"
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["operation"] == "UPDATE"


class TestNeverDeleted:

    def test_order_cannot_be_deleted(self, session_factory, delivered_order):
        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                session.delete(session.get(Order, delivered_order))

    def test_order_delete_leaves_lines_in_place(self, session_factory, coordinator, customer, delivered_order):
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            with session_scope(session_factory) as session:
                session.delete(session.get(Order, delivered_order))
        assert exc_info.value.entity_type == "Order"
        assert len(coordinator.get_order(customer, delivered_order).lines) == 1

    def test_order_line_cannot_be_deleted(self, session_factory, coordinator, customer, delivered_order):
        line_id = coordinator.get_order(customer, delivered_order).lines[0].id
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            with session_scope(session_factory) as session:
                session.delete(session.get(OrderLine, line_id))
        assert exc_info.value.entity_type == "OrderLine"
        assert coordinator.get_order(customer, delivered_order).lines[0].id == line_id

    def test_purchase_order_detail_cannot_be_deleted(self, session_factory, coordinator, supplier, approved_po):
        po = approved_po()
        detail_id = po.detail_ids[0]
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            with session_scope(session_factory) as session:
                session.delete(session.get(PurchaseOrderDetail, detail_id))
        assert exc_info.value.entity_type == "PurchaseOrderDetail"
        with session_scope(session_factory) as session:
            assert session.get(PurchaseOrderDetail, detail_id) is not None
        assert coordinator.get_purchase_order(supplier, po.id).detail_ids == (detail_id,)

    def test_shipment_cannot_be_deleted(self, session_factory, delivered_order):
        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                shipment = session.execute(
                    select(Shipment).where(Shipment.order_id == delivered_order)
                ).scalar_one()
                session.delete(shipment)

    def test_order_status_column_stays_writable(self, session_factory, coordinator, catalog, customer):
        order = coordinator.create_order(customer, [OrderLineInput(catalog.p1, 1)])
        with session_scope(session_factory) as session:
            session.get(Order, order.id).status = "cancelled"
        assert coordinator.get_order(customer, order.id).status == "cancelled"

    def test_inventory_cells_stay_writable(self, session_factory, coordinator, catalog, warehouse):
        coordinator.ledger_credit(warehouse, catalog.p1, catalog.w1, 5)
        with session_scope(session_factory) as session:
            record = session.execute(select(InventoryRecord)).scalar_one()
            record.reorder_threshold = 2


class TestRegistration:

    def test_register_is_idempotent(self, engine):
        register_immutability_listeners()
        register_immutability_listeners()
        assert event.contains(StatusHistory, "before_update", _block_update)
        assert event.contains(Order, "before_delete", _block_delete)
        assert event.contains(PurchaseOrderDetail, "before_delete", _block_delete)
        assert event.contains(Session, "before_flush", _block_deletes_before_flush)

    def test_unregister_removes_guards(self, engine, session_factory, delivered_order):
        unregister_immutability_listeners()
        try:
            assert not event.contains(StatusHistory, "before_update", _block_update)
            with session_scope(session_factory) as session:
                row = session.execute(select(StatusHistory).limit(1)).scalar_one()
                row.note = "annotated"
        finally:
            register_immutability_listeners()
