"""
Authorization policy tables (``fulfillment_kernel.domain.authorization``).

Responsibility
--------------
One table answers "may this role walk this edge" for every workflow
entity, and a second answers "may this role perform this action" for
entity creation and direct ledger operations.  Both are data consulted
by the services; no service carries its own role conditionals.

Architecture position
---------------------
**Kernel domain layer** -- pure data plus lookup helpers.  ZERO I/O.

Invariants enforced
-------------------
* Every declared workflow edge has an entry in ``TRANSITION_POLICY``
  (checked by ``validate_policy_coverage`` at import time).
* ``admin`` is granted every edge and every action.
* Customers walk only their own orders and suppliers only the purchase
  orders addressed to them (``OWNERSHIP_POLICY``).
"""

from __future__ import annotations

from typing import Any

from fulfillment_kernel.domain.actor import ActorContext, Role
from fulfillment_kernel.domain.workflow import EntityType
from fulfillment_kernel.domain.workflows import WORKFLOWS
from fulfillment_kernel.exceptions import UnauthorizedError

_C = Role.CUSTOMER
_S = Role.SUPPLIER
_W = Role.WAREHOUSE
_F = Role.FACTORY
_K = Role.CARRIER
_A = Role.ADMIN


def _roles(*roles: Role) -> frozenset[Role]:
    return frozenset(roles) | {_A}


# (entity_type, from_status, to_status) -> roles allowed to walk the edge
TRANSITION_POLICY: dict[tuple[EntityType, str, str], frozenset[Role]] = {
    # Customer order
    (EntityType.ORDER, "pending", "confirmed"): _roles(_W),
    (EntityType.ORDER, "confirmed", "shipped"): _roles(_W),
    (EntityType.ORDER, "shipped", "in_transit"): _roles(_K),
    (EntityType.ORDER, "in_transit", "delivered"): _roles(_K),
    (EntityType.ORDER, "pending", "cancelled"): _roles(_C, _W),
    (EntityType.ORDER, "confirmed", "cancelled"): _roles(_W),
    (EntityType.ORDER, "shipped", "cancelled"): _roles(),
    (EntityType.ORDER, "in_transit", "cancelled"): _roles(),
    # Purchase order
    (EntityType.PURCHASE_ORDER, "pending", "approved"): _roles(_S),
    (EntityType.PURCHASE_ORDER, "pending", "rejected"): _roles(_S),
    (EntityType.PURCHASE_ORDER, "approved", "completed"): _roles(_S, _W),
    (EntityType.PURCHASE_ORDER, "approved", "cancelled"): _roles(_W),
    # Production order
    (EntityType.PRODUCTION_ORDER, "pending", "in_progress"): _roles(_F),
    (EntityType.PRODUCTION_ORDER, "in_progress", "completed"): _roles(_F),
    (EntityType.PRODUCTION_ORDER, "pending", "cancelled"): _roles(_F),
    (EntityType.PRODUCTION_ORDER, "in_progress", "cancelled"): _roles(_F),
    # Return request
    (EntityType.RETURN_REQUEST, "pending", "approved"): _roles(_W),
    (EntityType.RETURN_REQUEST, "pending", "rejected"): _roles(_W),
    (EntityType.RETURN_REQUEST, "approved", "processing"): _roles(_W),
    (EntityType.RETURN_REQUEST, "processing", "completed"): _roles(_W),
}


# (entity_type, role) -> attribute naming the entity's owner.  An actor in
# one of these roles may walk an edge only on an entity it owns.
OWNERSHIP_POLICY: dict[tuple[EntityType, Role], str] = {
    (EntityType.ORDER, _C): "customer_id",
    (EntityType.PURCHASE_ORDER, _S): "supplier_id",
}


# Non-transition actions
CREATE_ORDER = "create_order"
CREATE_PURCHASE_ORDER = "create_purchase_order"
CREATE_PRODUCTION_ORDER = "create_production_order"
CREATE_PRODUCTION_FROM_DETAIL = "create_production_from_detail"
CREATE_SHIPMENT = "create_shipment"
CREATE_RETURN = "create_return"
LEDGER_CREDIT = "ledger_credit"
LEDGER_DEBIT = "ledger_debit"
LEDGER_ASSIGN = "ledger_assign"
LEDGER_ADJUST = "ledger_adjust"
LEDGER_SET_THRESHOLD = "ledger_set_threshold"

ACTION_POLICY: dict[str, frozenset[Role]] = {
    CREATE_ORDER: _roles(_C),
    CREATE_PURCHASE_ORDER: _roles(_W),
    CREATE_PRODUCTION_ORDER: _roles(_F),
    CREATE_PRODUCTION_FROM_DETAIL: _roles(_F),
    CREATE_SHIPMENT: _roles(_W),
    CREATE_RETURN: _roles(_C),
    LEDGER_CREDIT: _roles(_W),
    LEDGER_DEBIT: _roles(_W),
    LEDGER_ASSIGN: _roles(_W),
    LEDGER_ADJUST: _roles(_W),
    LEDGER_SET_THRESHOLD: _roles(_W),
}


def can_transition(
    role: Role, entity_type: EntityType, from_status: str, to_status: str
) -> bool:
    return role in TRANSITION_POLICY.get((entity_type, from_status, to_status), frozenset())


def owns(actor: ActorContext, entity_type: EntityType, entity: Any) -> bool:
    """True unless ``OWNERSHIP_POLICY`` ties the actor's role to another owner."""
    attribute = OWNERSHIP_POLICY.get((entity_type, actor.role))
    if attribute is None:
        return True
    return getattr(entity, attribute) == actor.actor_id


def require_transition(
    actor: ActorContext,
    entity_type: EntityType,
    from_status: str,
    to_status: str,
    entity: Any = None,
) -> None:
    """
    Raise UnauthorizedError unless the actor's role may walk the edge and,
    when ``entity`` is given, the actor owns it where ownership applies.
    """
    if not can_transition(actor.role, entity_type, from_status, to_status):
        raise UnauthorizedError(
            role=actor.role.value,
            action=f"{from_status}->{to_status}",
            entity_type=entity_type.value,
        )
    if entity is not None and not owns(actor, entity_type, entity):
        raise UnauthorizedError(
            role=actor.role.value,
            action=f"{from_status}->{to_status} on an entity it does not own",
            entity_type=entity_type.value,
        )


def require_action(actor: ActorContext, action: str, subject: str) -> None:
    """Raise UnauthorizedError unless the actor's role may perform ``action``."""
    if actor.role not in ACTION_POLICY.get(action, frozenset()):
        raise UnauthorizedError(role=actor.role.value, action=action, entity_type=subject)


def validate_policy_coverage() -> None:
    """Every declared edge must have a policy entry, and vice versa."""
    declared = {
        (wf.entity_type, t.from_state, t.to_state)
        for wf in WORKFLOWS.values()
        for t in wf.transitions
    }
    missing = declared - TRANSITION_POLICY.keys()
    extra = TRANSITION_POLICY.keys() - declared
    if missing or extra:
        raise ValueError(
            f"Authorization policy out of sync: missing={sorted(missing)}, "
            f"undeclared={sorted(extra)}"
        )


validate_policy_coverage()
