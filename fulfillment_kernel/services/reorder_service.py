"""
ReorderTrigger -- raises and clears reorder suggestions.

Responsibility:
    Reacts to the ledger's low-stock predicate.  A suggestion is raised
    when a cell goes from not-low to low, and cleared either when a
    purchase order covering the cell is created or when the cell
    recovers to its threshold.

Architecture position:
    Kernel > Services.  Invoked synchronously by InventoryLedger after
    every mutation and by DocumentService after purchase-order creation.

Invariants enforced:
    - At most one outstanding suggestion per (product, warehouse): the
      UNIQUE ``open_key`` column, with the insert done inside a SAVEPOINT
      so a concurrent raise degrades to "already outstanding".
    - Never creates purchase orders.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.reorder import ReorderSuggestion, open_key_for
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.reorder")

CLEARED_BY_PURCHASE_ORDER = "purchase_order_created"
CLEARED_BY_RECOVERY = "stock_recovered"


class ReorderTrigger(BaseService):
    """Maintains outstanding reorder suggestions."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def outstanding(self, product_id: UUID, warehouse_id: UUID) -> ReorderSuggestion | None:
        return self.session.execute(
            select(ReorderSuggestion).where(
                ReorderSuggestion.open_key == open_key_for(product_id, warehouse_id)
            )
        ).scalar_one_or_none()

    def evaluate(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        *,
        was_low: bool,
        is_low: bool,
        quantity: int,
        threshold: int,
    ) -> ReorderSuggestion | None:
        """
        Apply one predicate change.

        Returns the suggestion raised by this call, if any.
        """
        if is_low and not was_low:
            return self._raise(product_id, warehouse_id, quantity, threshold)
        if not is_low:
            self._clear(product_id, warehouse_id, CLEARED_BY_RECOVERY)
        return None

    def clear_for_purchase_order(
        self, warehouse_id: UUID, product_ids: list[UUID]
    ) -> list[ReorderSuggestion]:
        """Clear suggestions a new purchase order for ``warehouse_id`` covers."""
        cleared = []
        for product_id in sorted(set(product_ids), key=str):
            suggestion = self._clear(product_id, warehouse_id, CLEARED_BY_PURCHASE_ORDER)
            if suggestion is not None:
                cleared.append(suggestion)
        return cleared

    def _raise(
        self, product_id: UUID, warehouse_id: UUID, quantity: int, threshold: int
    ) -> ReorderSuggestion | None:
        if self.outstanding(product_id, warehouse_id) is not None:
            logger.debug(
                "reorder_suggestion_already_outstanding",
                extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )
            return None

        savepoint = self.session.begin_nested()
        try:
            suggestion = ReorderSuggestion(
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity_at_trigger=quantity,
                threshold=threshold,
                raised_at=self._clock.now(),
                open_key=open_key_for(product_id, warehouse_id),
            )
            self.session.add(suggestion)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "reorder_suggestion_race_lost",
                extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )
            return None

        logger.info(
            "reorder_suggestion_raised",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse_id),
                "quantity": quantity,
                "threshold": threshold,
            },
        )
        return suggestion

    def _clear(
        self, product_id: UUID, warehouse_id: UUID, reason: str
    ) -> ReorderSuggestion | None:
        suggestion = self.outstanding(product_id, warehouse_id)
        if suggestion is None:
            return None
        suggestion.cleared_at = self._clock.now()
        suggestion.clear_reason = reason
        suggestion.open_key = None
        self.session.flush()
        logger.info(
            "reorder_suggestion_cleared",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse_id),
                "reason": reason,
            },
        )
        return suggestion
