"""
Tests for the static transition tables (fulfillment_kernel.domain.workflows).

Covers:
- Every declared edge of each workflow, and the terminal states
- Workflow construction guards (undeclared states, terminal out-edges)
- get_workflow lookup by enum and by string
"""

import pytest

from fulfillment_kernel.domain.workflow import EntityType, Transition, Workflow
from fulfillment_kernel.domain.workflows import (
    ORDER_WORKFLOW,
    PRODUCTION_ORDER_WORKFLOW,
    PURCHASE_ORDER_WORKFLOW,
    RETURN_WORKFLOW,
    WORKFLOWS,
    get_workflow,
)


def _edges(workflow: Workflow) -> set[tuple[str, str]]:
    return {(t.from_state, t.to_state) for t in workflow.transitions}


class TestDeclaredEdges:

    def test_purchase_order_edges(self):
        assert _edges(PURCHASE_ORDER_WORKFLOW) == {
            ("pending", "approved"),
            ("pending", "rejected"),
            ("approved", "completed"),
            ("approved", "cancelled"),
        }
        assert set(PURCHASE_ORDER_WORKFLOW.terminal_states) == {"completed", "rejected", "cancelled"}

    def test_production_order_edges(self):
        assert _edges(PRODUCTION_ORDER_WORKFLOW) == {
            ("pending", "in_progress"),
            ("in_progress", "completed"),
            ("pending", "cancelled"),
            ("in_progress", "cancelled"),
        }

    def test_order_cannot_skip_steps(self):
        assert ORDER_WORKFLOW.find_transition("pending", "shipped") is None
        assert ORDER_WORKFLOW.find_transition("confirmed", "delivered") is None
        assert ORDER_WORKFLOW.next_states("shipped") == ("in_transit", "cancelled")

    def test_every_non_terminal_order_state_can_cancel(self):
        for state in ORDER_WORKFLOW.states:
            if ORDER_WORKFLOW.is_terminal(state):
                assert ORDER_WORKFLOW.next_states(state) == ()
            else:
                assert "cancelled" in ORDER_WORKFLOW.next_states(state)

    def test_return_edges(self):
        assert _edges(RETURN_WORKFLOW) == {
            ("pending", "approved"),
            ("pending", "rejected"),
            ("approved", "processing"),
            ("processing", "completed"),
        }

    @pytest.mark.parametrize("workflow", list(WORKFLOWS.values()), ids=lambda w: w.entity_type.value)
    def test_initial_state_is_pending(self, workflow):
        assert workflow.initial_state == "pending"


class TestWorkflowConstruction:

    def test_rejects_undeclared_state(self):
        with pytest.raises(ValueError, match="undeclared state"):
            Workflow(
                entity_type=EntityType.ORDER,
                description="broken",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("a", "c", action="go"),),
            )

    def test_rejects_terminal_out_edge(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                entity_type=EntityType.ORDER,
                description="broken",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", action="reopen"),),
                terminal_states=("b",),
            )

    def test_rejects_unknown_initial_state(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                entity_type=EntityType.ORDER,
                description="broken",
                initial_state="z",
                states=("a",),
                transitions=(),
            )


class TestLookup:

    def test_by_enum_and_string(self):
        assert get_workflow(EntityType.PRODUCTION_ORDER) is PRODUCTION_ORDER_WORKFLOW
        assert get_workflow("purchase_order") is PURCHASE_ORDER_WORKFLOW

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            get_workflow("shipment")
