"""
History replay (``fulfillment_kernel.domain.replay``).

Reconstructs an entity's current status from its ordered status history
and verifies that the history is a walk of the declared transition graph.
Pure function over plain values; callers load the records.
"""

from __future__ import annotations

from typing import Iterable, Protocol

from fulfillment_kernel.domain.workflow import Workflow
from fulfillment_kernel.exceptions import InvalidTransitionError


class HistoryStep(Protocol):
    old_status: str | None
    new_status: str


def replay_status(
    workflow: Workflow,
    steps: Iterable[HistoryStep],
    entity_id: str = "?",
) -> str | None:
    """
    Fold history steps into the current status.

    The first step must be the creation record (None -> initial_state).
    Every later step must start from the status the previous step ended
    in and follow a declared edge.  Returns None for an empty history.

    Raises:
        InvalidTransitionError: if the sequence is not a walk of the graph.
    """
    current: str | None = None
    for step in steps:
        if current is None:
            if step.old_status is not None or step.new_status != workflow.initial_state:
                raise InvalidTransitionError(
                    workflow.entity_type.value,
                    entity_id,
                    step.old_status,
                    step.new_status,
                    reason="history does not start with the creation record",
                )
            current = step.new_status
            continue
        if step.old_status != current:
            raise InvalidTransitionError(
                workflow.entity_type.value,
                entity_id,
                step.old_status,
                step.new_status,
                reason=f"history gap: previous status was {current}",
            )
        if workflow.find_transition(current, step.new_status) is None:
            raise InvalidTransitionError(
                workflow.entity_type.value,
                entity_id,
                current,
                step.new_status,
                reason="edge not declared",
            )
        current = step.new_status
    return current
