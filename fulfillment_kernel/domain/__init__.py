"""Pure domain layer: workflows, authorization tables, replay, DTOs."""

from fulfillment_kernel.domain.actor import ActorContext, Role
from fulfillment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fulfillment_kernel.domain.workflow import EntityType, Transition, Workflow
from fulfillment_kernel.domain.workflows import WORKFLOWS, get_workflow

__all__ = [
    "ActorContext",
    "Role",
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "EntityType",
    "Transition",
    "Workflow",
    "WORKFLOWS",
    "get_workflow",
]
