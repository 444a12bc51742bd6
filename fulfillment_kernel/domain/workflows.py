"""
Fulfillment Workflows.

Static transition tables for orders, purchase orders, production orders
and return requests.
"""

from fulfillment_kernel.domain.workflow import EntityType, Transition, Workflow
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("domain.workflows")


# -----------------------------------------------------------------------------
# Customer Order
# -----------------------------------------------------------------------------

ORDER_WORKFLOW = Workflow(
    entity_type=EntityType.ORDER,
    description="Customer order fulfillment",
    initial_state="pending",
    states=(
        "pending",
        "confirmed",
        "shipped",
        "in_transit",
        "delivered",
        "cancelled",
    ),
    transitions=(
        Transition("pending", "confirmed", action="confirm"),
        Transition("confirmed", "shipped", action="ship"),
        Transition("shipped", "in_transit", action="pick_up"),
        Transition("in_transit", "delivered", action="deliver"),
        Transition("pending", "cancelled", action="cancel"),
        Transition("confirmed", "cancelled", action="cancel"),
        Transition("shipped", "cancelled", action="cancel"),
        Transition("in_transit", "cancelled", action="cancel"),
    ),
    terminal_states=("delivered", "cancelled"),
)


# -----------------------------------------------------------------------------
# Purchase Order (warehouse -> supplier)
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    entity_type=EntityType.PURCHASE_ORDER,
    description="Purchase order issued by a warehouse to a supplier",
    initial_state="pending",
    states=(
        "pending",
        "approved",
        "completed",
        "rejected",
        "cancelled",
    ),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("pending", "rejected", action="reject"),
        Transition("approved", "completed", action="complete"),
        Transition("approved", "cancelled", action="cancel"),
    ),
    terminal_states=("completed", "rejected", "cancelled"),
)


# -----------------------------------------------------------------------------
# Production Order (factory)
# -----------------------------------------------------------------------------

PRODUCTION_ORDER_WORKFLOW = Workflow(
    entity_type=EntityType.PRODUCTION_ORDER,
    description="Factory production run",
    initial_state="pending",
    states=(
        "pending",
        "in_progress",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("pending", "in_progress", action="start"),
        Transition("in_progress", "completed", action="complete"),
        Transition("pending", "cancelled", action="cancel"),
        Transition("in_progress", "cancelled", action="cancel"),
    ),
    terminal_states=("completed", "cancelled"),
)


# -----------------------------------------------------------------------------
# Return Request (customer -> warehouse)
# -----------------------------------------------------------------------------

RETURN_WORKFLOW = Workflow(
    entity_type=EntityType.RETURN_REQUEST,
    description="Customer return against a delivered order",
    initial_state="pending",
    states=(
        "pending",
        "approved",
        "processing",
        "completed",
        "rejected",
    ),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("pending", "rejected", action="reject"),
        Transition("approved", "processing", action="process"),
        Transition("processing", "completed", action="complete"),
    ),
    terminal_states=("completed", "rejected"),
)


WORKFLOWS: dict[EntityType, Workflow] = {
    wf.entity_type: wf
    for wf in (
        ORDER_WORKFLOW,
        PURCHASE_ORDER_WORKFLOW,
        PRODUCTION_ORDER_WORKFLOW,
        RETURN_WORKFLOW,
    )
}


def get_workflow(entity_type: EntityType | str) -> Workflow:
    """Return the workflow for an entity type (accepts the string value)."""
    return WORKFLOWS[EntityType(entity_type)]


logger.debug(
    "fulfillment_workflows_registered",
    extra={
        "workflows": {
            wf.entity_type.value: len(wf.transitions) for wf in WORKFLOWS.values()
        },
    },
)
