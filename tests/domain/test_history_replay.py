"""
Tests for history replay (fulfillment_kernel.domain.replay).

Covers:
- Folding a valid history into the current status
- Rejection of histories without a creation record, with gaps, or with
  undeclared edges
- Property: any random walk of a workflow graph replays to its last state
"""

from dataclasses import dataclass

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from fulfillment_kernel.domain.replay import replay_status
from fulfillment_kernel.domain.workflows import (
    ORDER_WORKFLOW,
    PURCHASE_ORDER_WORKFLOW,
    WORKFLOWS,
)
from fulfillment_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Step:
    old_status: str | None
    new_status: str


def _walk(*statuses: str) -> list[Step]:
    steps = [Step(None, statuses[0])]
    for old, new in zip(statuses, statuses[1:]):
        steps.append(Step(old, new))
    return steps


class TestReplay:

    def test_empty_history_has_no_status(self):
        assert replay_status(ORDER_WORKFLOW, []) is None

    def test_creation_only(self):
        assert replay_status(ORDER_WORKFLOW, _walk("pending")) == "pending"

    def test_full_order_walk(self):
        steps = _walk("pending", "confirmed", "shipped", "in_transit", "delivered")
        assert replay_status(ORDER_WORKFLOW, steps) == "delivered"

    def test_missing_creation_record(self):
        steps = [Step("pending", "approved")]
        with pytest.raises(InvalidTransitionError, match="creation record"):
            replay_status(PURCHASE_ORDER_WORKFLOW, steps)

    def test_creation_in_wrong_state(self):
        with pytest.raises(InvalidTransitionError):
            replay_status(PURCHASE_ORDER_WORKFLOW, [Step(None, "approved")])

    def test_gap_in_history(self):
        steps = [Step(None, "pending"), Step("approved", "completed")]
        with pytest.raises(InvalidTransitionError, match="history gap"):
            replay_status(PURCHASE_ORDER_WORKFLOW, steps, entity_id="po-9")

    def test_skipped_edge(self):
        steps = _walk("pending", "completed")
        with pytest.raises(InvalidTransitionError) as exc_info:
            replay_status(PURCHASE_ORDER_WORKFLOW, steps, entity_id="po-9")
        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "completed"
        assert exc_info.value.entity_id == "po-9"


@st.composite
def random_walks(draw):
    workflow = draw(st.sampled_from(list(WORKFLOWS.values())))
    statuses = [workflow.initial_state]
    for _ in range(draw(st.integers(min_value=0, max_value=8))):
        options = workflow.next_states(statuses[-1])
        if not options:
            break
        statuses.append(draw(st.sampled_from(options)))
    return workflow, statuses


class TestReplayProperties:

    @settings(max_examples=200, deadline=None)
    @given(random_walks())
    def test_any_walk_replays_to_its_last_state(self, walk):
        workflow, statuses = walk
        assert replay_status(workflow, _walk(*statuses)) == statuses[-1]

    @settings(max_examples=100, deadline=None)
    @given(random_walks(), st.data())
    def test_any_undeclared_step_is_rejected(self, walk, data):
        workflow, statuses = walk
        current = statuses[-1]
        illegal = [
            s for s in workflow.states
            if s != current and workflow.find_transition(current, s) is None
        ]
        if not illegal:
            return
        target = data.draw(st.sampled_from(illegal))
        with pytest.raises(InvalidTransitionError):
            replay_status(workflow, _walk(*statuses, target))
