"""
Tests for StatusTransitionEngine via FulfillmentCoordinator.transition.

Covers:
- Declared edges only; skipped and terminal edges are rejected unchanged
- Idempotent repeat of the current status
- Role permission per edge
- Optimistic expected_version
- One history row per committed change; replay reproduces the status
- workflow_transition trace records
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment_kernel.domain.dtos import PurchaseOrderLineInput
from fulfillment_kernel.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
)


@pytest.fixture
def pending_po(coordinator, catalog, warehouse, supplier):
    return coordinator.create_purchase_order(
        warehouse,
        catalog.w1,
        supplier.actor_id,
        [PurchaseOrderLineInput(catalog.p1, 10, Decimal("2.00"))],
    )


def _traces(captured_logs) -> list[dict]:
    return [r for r in captured_logs() if r["message"] == "workflow_transition"]


class TestDeclaredEdges:

    def test_skipping_approved_is_rejected(self, coordinator, pending_po, supplier):
        with pytest.raises(InvalidTransitionError) as exc_info:
            coordinator.transition(supplier, "purchase_order", pending_po.id, "completed")

        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "completed"
        assert coordinator.get_purchase_order(supplier, pending_po.id).status == "pending"
        assert len(coordinator.history(supplier, "purchase_order", pending_po.id)) == 1

    def test_walk_to_completion(self, coordinator, pending_po, supplier):
        approved = coordinator.transition(supplier, "purchase_order", pending_po.id, "approved")
        completed = coordinator.transition(supplier, "purchase_order", pending_po.id, "completed")

        assert approved.changed and completed.changed
        assert completed.status == "completed"
        assert completed.version > approved.version

    def test_terminal_state_has_no_exit(self, coordinator, pending_po, supplier):
        coordinator.transition(supplier, "purchase_order", pending_po.id, "rejected")
        with pytest.raises(InvalidTransitionError, match="terminal"):
            coordinator.transition(supplier, "purchase_order", pending_po.id, "approved")

    def test_unknown_status(self, coordinator, pending_po, supplier):
        with pytest.raises(InvalidTransitionError, match="not a purchase_order status"):
            coordinator.transition(supplier, "purchase_order", pending_po.id, "archived")

    def test_unknown_entity(self, coordinator, supplier):
        with pytest.raises(NotFoundError):
            coordinator.transition(supplier, "purchase_order", uuid4(), "approved")

    def test_unknown_entity_type(self, coordinator, supplier):
        with pytest.raises(NotFoundError):
            coordinator.transition(supplier, "shipment", uuid4(), "delivered")

    def test_malformed_id(self, coordinator, supplier):
        with pytest.raises(NotFoundError):
            coordinator.transition(supplier, "purchase_order", "po-9", "approved")

    def test_accepts_string_id(self, coordinator, pending_po, supplier):
        outcome = coordinator.transition(supplier, "purchase_order", str(pending_po.id), "approved")
        assert outcome.entity_id == pending_po.id


class TestIdempotency:

    def test_repeat_is_a_noop(self, coordinator, pending_po, supplier):
        first = coordinator.transition(supplier, "purchase_order", pending_po.id, "approved")
        second = coordinator.transition(supplier, "purchase_order", pending_po.id, "approved")

        assert first.changed is True
        assert second.changed is False
        assert second.status == "approved"
        assert second.version == first.version
        assert second.history_id == first.history_id
        assert len(coordinator.history(supplier, "purchase_order", pending_po.id)) == 2

    def test_repeat_ignores_expected_version(self, coordinator, pending_po, supplier):
        coordinator.transition(supplier, "purchase_order", pending_po.id, "approved")
        outcome = coordinator.transition(
            supplier, "purchase_order", pending_po.id, "approved", expected_version=999
        )
        assert outcome.changed is False

    def test_repeat_of_initial_status_points_at_creation_row(self, coordinator, pending_po, supplier):
        outcome = coordinator.transition(supplier, "purchase_order", pending_po.id, "pending")
        creation = coordinator.history(supplier, "purchase_order", pending_po.id)[0]
        assert outcome.changed is False
        assert outcome.history_id == creation.id


class TestAuthorization:

    def test_role_without_the_edge(self, coordinator, pending_po, customer, warehouse):
        for actor in (customer, warehouse):
            with pytest.raises(UnauthorizedError):
                coordinator.transition(actor, "purchase_order", pending_po.id, "approved")
        assert coordinator.get_purchase_order(customer, pending_po.id).status == "pending"

    def test_admin_walks_any_edge(self, coordinator, pending_po, admin):
        outcome = coordinator.transition(admin, "purchase_order", pending_po.id, "approved")
        assert outcome.status == "approved"

    def test_undeclared_edge_reported_before_role(self, coordinator, pending_po, customer):
        with pytest.raises(InvalidTransitionError):
            coordinator.transition(customer, "purchase_order", pending_po.id, "completed")


class TestExpectedVersion:

    def test_stale_version_conflicts(self, coordinator, pending_po, supplier, warehouse):
        approved = coordinator.transition(supplier, "purchase_order", pending_po.id, "approved")

        with pytest.raises(ConflictError) as exc_info:
            coordinator.transition(
                warehouse,
                "purchase_order",
                pending_po.id,
                "cancelled",
                expected_version=approved.version - 1,
            )
        assert exc_info.value.actual_version == approved.version
        assert coordinator.get_purchase_order(supplier, pending_po.id).status == "approved"

    def test_current_version_succeeds(self, coordinator, pending_po, supplier, warehouse):
        approved = coordinator.transition(supplier, "purchase_order", pending_po.id, "approved")
        outcome = coordinator.transition(
            warehouse,
            "purchase_order",
            pending_po.id,
            "cancelled",
            expected_version=approved.version,
        )
        assert outcome.status == "cancelled"


class TestHistory:

    def test_one_row_per_change(self, coordinator, pending_po, supplier):
        coordinator.transition(supplier, "purchase_order", pending_po.id, "approved", note="ok by phone")
        coordinator.transition(supplier, "purchase_order", pending_po.id, "completed")

        rows = coordinator.history(supplier, "purchase_order", pending_po.id)
        assert [(r.old_status, r.new_status) for r in rows] == [
            (None, "pending"),
            ("pending", "approved"),
            ("approved", "completed"),
        ]
        assert [r.seq for r in rows] == [0, 1, 2]
        assert rows[1].note == "ok by phone"
        assert rows[1].actor_id == supplier.actor_id
        assert rows[1].actor_role == "supplier"

    def test_replay_matches_status(self, coordinator, order_flow, customer):
        order_id = order_flow(until="in_transit")
        assert coordinator.replay_status(customer, "order", order_id) == "in_transit"
        assert coordinator.get_order(customer, order_id).status == "in_transit"

    def test_failed_transition_writes_nothing(self, coordinator, pending_po, customer):
        with pytest.raises(UnauthorizedError):
            coordinator.transition(customer, "purchase_order", pending_po.id, "approved")
        assert len(coordinator.history(customer, "purchase_order", pending_po.id)) == 1


class TestTrace:

    def test_success_and_noop_outcomes(self, coordinator, pending_po, supplier, captured_logs):
        coordinator.transition(supplier, "purchase_order", pending_po.id, "approved")
        coordinator.transition(supplier, "purchase_order", pending_po.id, "approved")

        traces = _traces(captured_logs)
        assert [t["outcome"] for t in traces] == ["success", "idempotent_noop"]
        assert traces[0]["from_state"] == "pending"
        assert traces[0]["to_state"] == "approved"
        assert traces[0]["entity_id"] == str(pending_po.id)
        assert traces[0]["actor_role"] == "supplier"
        assert "correlation_id" in traces[0]

    def test_rejection_outcomes(self, coordinator, pending_po, supplier, customer, captured_logs):
        with pytest.raises(UnauthorizedError):
            coordinator.transition(customer, "purchase_order", pending_po.id, "approved")
        with pytest.raises(InvalidTransitionError):
            coordinator.transition(supplier, "purchase_order", pending_po.id, "completed")
        with pytest.raises(ConflictError):
            coordinator.transition(
                supplier, "purchase_order", pending_po.id, "approved", expected_version=42
            )

        assert [t["outcome"] for t in _traces(captured_logs)] == [
            "unauthorized",
            "no_transition",
            "conflict",
        ]
