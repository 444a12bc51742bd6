"""
ORM-level append-only enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | UPDATE        | DELETE
--------------------|---------------|--------
StatusHistory       | blocked       | blocked
InventoryMovement   | blocked       | blocked
Order               | allowed       | blocked
OrderLine           | allowed       | blocked
PurchaseOrder       | allowed       | blocked
PurchaseOrderDetail | allowed       | blocked
ProductionOrder     | allowed       | blocked
ReturnRequest       | allowed       | blocked
Shipment            | allowed       | blocked

Workflow entities are archived by reaching a terminal status; they are
never removed.  History and movements are written once.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_flush]  --> _block_deletes_before_flush() --> ImmutabilityViolationError
    [before_update] --> _block_update() --> ImmutabilityViolationError
    [before_delete] --> _block_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Deletes are checked in ``before_flush`` over ``session.deleted``: mapper
events fire after the flush plan has already nulled child foreign keys,
so deleting an Order would otherwise fail on ``order_lines.order_id``
before the guard ran.  ``before_delete`` stays attached as a second line.

Bulk ``session.execute(update(...))`` bypasses mapper events; kernel code
never issues bulk writes against these tables.

===============================================================================
USAGE
===============================================================================

    register_immutability_listeners()     # idempotent; the coordinator calls it
    unregister_immutability_listeners()   # tests only
"""

from sqlalchemy import event
from sqlalchemy.orm import Session

from fulfillment_kernel.exceptions import ImmutabilityViolationError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _violation(target, operation: str, reason: str) -> ImmutabilityViolationError:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _block_update(mapper, connection, target):
    """Append-only rows are written once."""
    raise _violation(target, "UPDATE", "append-only records cannot be modified")


def _block_delete(mapper, connection, target):
    """Nothing the kernel records is ever removed."""
    raise _violation(target, "DELETE", "records are archived by status, never deleted")


def _protected_models():
    from fulfillment_kernel.models import (
        InventoryMovement,
        Order,
        OrderLine,
        ProductionOrder,
        PurchaseOrder,
        PurchaseOrderDetail,
        ReturnRequest,
        Shipment,
        StatusHistory,
    )

    append_only = (StatusHistory, InventoryMovement)
    undeletable = append_only + (
        Order,
        OrderLine,
        PurchaseOrder,
        PurchaseOrderDetail,
        ProductionOrder,
        ReturnRequest,
        Shipment,
    )
    return append_only, undeletable


def _block_deletes_before_flush(session, flush_context, instances):
    """Reject a flush that would delete any protected row."""
    _, undeletable = _protected_models()
    for obj in list(session.deleted):
        if isinstance(obj, undeletable):
            raise _violation(obj, "DELETE", "records are archived by status, never deleted")


def register_immutability_listeners():
    """
    Register the update/delete guards.

    Safe to call repeatedly; a listener already attached is not added twice.
    """
    if not event.contains(Session, "before_flush", _block_deletes_before_flush):
        event.listen(Session, "before_flush", _block_deletes_before_flush)
    append_only, undeletable = _protected_models()
    for model in append_only:
        if not event.contains(model, "before_update", _block_update):
            event.listen(model, "before_update", _block_update)
    for model in undeletable:
        if not event.contains(model, "before_delete", _block_delete):
            event.listen(model, "before_delete", _block_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the guards.

    WARNING: Only use this in tests that must write a forbidden change to
    verify that something else detects it.
    """
    _safe_remove_listener(Session, "before_flush", _block_deletes_before_flush)
    append_only, undeletable = _protected_models()
    for model in append_only:
        _safe_remove_listener(model, "before_update", _block_update)
    for model in undeletable:
        _safe_remove_listener(model, "before_delete", _block_delete)
