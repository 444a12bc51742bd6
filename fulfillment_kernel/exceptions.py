"""
Typed Exception Hierarchy for the Fulfillment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The calling UI must render the specific error kind and leave all displayed
state unchanged until a fresh read. That only works if callers can catch
by type and read structured fields, never by parsing message strings.

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        coordinator.ledger_debit(actor, product_id, warehouse_id, 5, ref)
    except InsufficientStockError as e:
        api_response(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FulfillmentKernelError (base)
    |
    +-- NotFoundError
    +-- UnauthorizedError
    +-- InvalidTransitionError
    +-- ConflictError
    +-- InsufficientStockError
    +-- DuplicateProductionError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|----------------------------------------------------
NOT_FOUND               | Entity id does not exist
UNAUTHORIZED            | Role may not perform this edge / creation
INVALID_TRANSITION      | Edge not declared, or a precondition state is wrong
CONFLICT                | expected_version mismatch, or retries exhausted
INSUFFICIENT_STOCK      | Debit larger than the ledger cell holds
DUPLICATE_PRODUCTION    | A live production order already covers the PO line
IMMUTABILITY_VIOLATION  | UPDATE/DELETE on an append-only or archived record

===============================================================================
PROPAGATION
===============================================================================

Validation failures are raised synchronously to the caller. Transient
persistence failures (deadlock, "database is locked", stale version) are
retried by the coordinator a bounded number of times and then surface as
ConflictError. InsufficientStockError and DuplicateProductionError are
terminal for the call: the enclosing transaction rolls back, so there is
no partial ledger mutation and no partial entity creation.
===============================================================================
"""

from __future__ import annotations


class FulfillmentKernelError(Exception):
    """
    Base exception for all fulfillment kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "FULFILLMENT_KERNEL_ERROR"


class NotFoundError(FulfillmentKernelError):
    """Entity with the given id was not found."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class UnauthorizedError(FulfillmentKernelError):
    """The actor's role is not granted the requested action."""

    code: str = "UNAUTHORIZED"

    def __init__(self, role: str, action: str, entity_type: str):
        self.role = role
        self.action = action
        self.entity_type = entity_type
        super().__init__(
            f"Role '{role}' may not {action} on {entity_type}"
        )


class InvalidTransitionError(FulfillmentKernelError):
    """
    Requested status change is not a declared edge, or a precondition
    on the state of a related entity does not hold.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        from_status: str | None,
        to_status: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        message = (
            f"Invalid transition on {entity_type} {entity_id}: "
            f"{from_status} -> {to_status}"
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ConflictError(FulfillmentKernelError):
    """
    Concurrent modification detected.

    Raised immediately when the caller's expected_version is stale, and
    after bounded internal retries when the store keeps reporting
    transient contention.
    """

    code: str = "CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.reason = reason
        if expected_version is not None:
            message = (
                f"Conflict on {entity_type} {entity_id}: expected version "
                f"{expected_version}, found {actual_version}"
            )
        else:
            message = f"Conflict on {entity_type} {entity_id}: {reason or 'concurrent modification'}"
        super().__init__(message)


class InsufficientStockError(FulfillmentKernelError):
    """Debit exceeds the quantity held by the ledger cell."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        warehouse_id: str | None,
        requested: int,
        available: int,
    ):
        self.product_id = str(product_id)
        self.warehouse_id = str(warehouse_id) if warehouse_id is not None else None
        self.requested = requested
        self.available = available
        where = f" at warehouse {warehouse_id}" if warehouse_id is not None else ""
        super().__init__(
            f"Insufficient stock for product {product_id}{where}: "
            f"requested {requested}, available {available}"
        )


class DuplicateProductionError(FulfillmentKernelError):
    """A non-cancelled production order already references the PO line."""

    code: str = "DUPLICATE_PRODUCTION"

    def __init__(self, purchase_order_detail_id: str, existing_production_id: str | None = None):
        self.purchase_order_detail_id = str(purchase_order_detail_id)
        self.existing_production_id = (
            str(existing_production_id) if existing_production_id is not None else None
        )
        super().__init__(
            f"Purchase order line {purchase_order_detail_id} already has a live "
            f"production order ({existing_production_id})"
        )


class ImmutabilityViolationError(FulfillmentKernelError):
    """
    Attempted to modify or delete an append-only or archived record.

    History rows and inventory movements are never updated; no workflow
    entity is ever deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
