"""
Data Transfer Objects returned across the coordinator boundary.

Frozen dataclasses only; ORM instances never leave a session scope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of a transition request.

    ``changed`` is False for an idempotent repeat; ``history_id`` then
    points at the history row that put the entity into its current status.
    """
    entity_type: str
    entity_id: UUID
    status: str
    version: int
    history_id: UUID | None
    changed: bool


@dataclass(frozen=True)
class StatusHistoryRecord:
    id: UUID
    seq: int
    entity_type: str
    entity_id: UUID
    old_status: str | None
    new_status: str
    actor_id: UUID
    actor_role: str
    occurred_at: datetime
    note: str | None


@dataclass(frozen=True)
class MovementRecord:
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    delta: int
    quantity_after: int
    movement_type: str
    reference_id: str | None
    occurred_at: datetime


@dataclass(frozen=True)
class StockLevel:
    product_id: UUID
    warehouse_id: UUID
    quantity: int
    threshold: int

    @property
    def is_low(self) -> bool:
        return self.quantity < self.threshold


@dataclass(frozen=True)
class ReorderSuggestionRecord:
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    quantity_at_trigger: int
    threshold: int
    raised_at: datetime


@dataclass(frozen=True)
class ProductionOrderRecord:
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    purchase_order_detail_id: UUID | None
    quantity: int
    status: str
    version: int


@dataclass(frozen=True)
class PurchaseOrderRecord:
    id: UUID
    warehouse_id: UUID
    supplier_id: UUID
    source_order_id: UUID | None
    status: str
    detail_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class ShipmentRecord:
    id: UUID
    order_id: UUID
    warehouse_id: UUID
    carrier_id: UUID
    tracking_number: str


@dataclass(frozen=True)
class Lineage:
    """Causal links of a customer order, reconstructed from foreign keys."""
    order_id: UUID
    purchase_orders: tuple[PurchaseOrderRecord, ...] = field(default_factory=tuple)
    production_orders: tuple[ProductionOrderRecord, ...] = field(default_factory=tuple)
    shipments: tuple[ShipmentRecord, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class OrderLineInput:
    product_id: UUID
    quantity: int


@dataclass(frozen=True)
class PurchaseOrderLineInput:
    product_id: UUID
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class OrderLineRecord:
    id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class OrderRecord:
    id: UUID
    customer_id: UUID
    status: str
    version: int
    lines: tuple[OrderLineRecord, ...] = ()


@dataclass(frozen=True)
class ReturnRequestRecord:
    id: UUID
    order_id: UUID
    product_id: UUID
    quantity: int
    reason: str
    status: str
    version: int
