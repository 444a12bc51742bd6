"""
Module: fulfillment_kernel.selectors.inventory_selector
Responsibility: Stock levels, low-stock listing, movement log and
    outstanding reorder suggestions.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from fulfillment_kernel.domain.dtos import (
    MovementRecord,
    ReorderSuggestionRecord,
    StockLevel,
)
from fulfillment_kernel.models.inventory import InventoryMovement, InventoryRecord
from fulfillment_kernel.models.reorder import ReorderSuggestion
from fulfillment_kernel.selectors.base import BaseSelector


def stock_level(record: InventoryRecord, default_threshold: int) -> StockLevel:
    threshold = (
        record.reorder_threshold
        if record.reorder_threshold is not None
        else default_threshold
    )
    return StockLevel(
        product_id=record.product_id,
        warehouse_id=record.warehouse_id,
        quantity=record.quantity,
        threshold=threshold,
    )


def movement_record(movement: InventoryMovement) -> MovementRecord:
    return MovementRecord(
        id=movement.id,
        product_id=movement.product_id,
        warehouse_id=movement.warehouse_id,
        delta=movement.delta,
        quantity_after=movement.quantity_after,
        movement_type=movement.movement_type,
        reference_id=movement.reference_id,
        occurred_at=movement.occurred_at,
    )


def suggestion_record(suggestion: ReorderSuggestion) -> ReorderSuggestionRecord:
    return ReorderSuggestionRecord(
        id=suggestion.id,
        product_id=suggestion.product_id,
        warehouse_id=suggestion.warehouse_id,
        quantity_at_trigger=suggestion.quantity_at_trigger,
        threshold=suggestion.threshold,
        raised_at=suggestion.raised_at,
    )


class InventorySelector(BaseSelector):
    """Read-side queries over the inventory ledger."""

    def __init__(self, session, default_threshold: int = 10):
        super().__init__(session)
        self._default_threshold = default_threshold

    def stock_levels(self, warehouse_id: UUID | None = None) -> list[StockLevel]:
        stmt = select(InventoryRecord)
        if warehouse_id is not None:
            stmt = stmt.where(InventoryRecord.warehouse_id == warehouse_id)
        stmt = stmt.order_by(InventoryRecord.warehouse_id, InventoryRecord.product_id)
        return [
            stock_level(r, self._default_threshold)
            for r in self.session.execute(stmt).scalars()
        ]

    def low_stock_items(self, warehouse_id: UUID | None = None) -> list[StockLevel]:
        """Opened cells whose quantity is below their threshold, emptiest first."""
        levels = [level for level in self.stock_levels(warehouse_id) if level.is_low]
        return sorted(levels, key=lambda level: (level.quantity, str(level.product_id)))

    def movements(
        self,
        product_id: UUID | None = None,
        warehouse_id: UUID | None = None,
        reference_id: str | None = None,
    ) -> list[MovementRecord]:
        """Movement log in write order, optionally filtered."""
        stmt = select(InventoryMovement)
        if product_id is not None:
            stmt = stmt.where(InventoryMovement.product_id == product_id)
        if warehouse_id is not None:
            stmt = stmt.where(InventoryMovement.warehouse_id == warehouse_id)
        if reference_id is not None:
            stmt = stmt.where(InventoryMovement.reference_id == reference_id)
        stmt = stmt.order_by(InventoryMovement.occurred_at, InventoryMovement.seq)
        return [movement_record(m) for m in self.session.execute(stmt).scalars()]

    def pending_suggestions(
        self, warehouse_id: UUID | None = None
    ) -> list[ReorderSuggestionRecord]:
        stmt = select(ReorderSuggestion).where(ReorderSuggestion.open_key.is_not(None))
        if warehouse_id is not None:
            stmt = stmt.where(ReorderSuggestion.warehouse_id == warehouse_id)
        stmt = stmt.order_by(ReorderSuggestion.raised_at, ReorderSuggestion.product_id)
        return [suggestion_record(s) for s in self.session.execute(stmt).scalars()]
