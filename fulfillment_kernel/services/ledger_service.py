"""
InventoryLedger -- per-(product, warehouse) stock cells.

Responsibility:
    The only writer of InventoryRecord.quantity.  Every mutation appends
    an InventoryMovement, recomputes the low-stock predicate and hands it
    to the ReorderTrigger in the same transaction.

Architecture position:
    Kernel > Services.  Called by the transition side effects
    (production credit, fulfillment debit) and by FulfillmentCoordinator
    for direct ledger operations.

Invariants enforced:
    - quantity >= 0 at every commit: a debit larger than the cell raises
      InsufficientStockError before anything is written.  The CHECK
      constraint on the table is the backstop.
    - Per-cell serialization: the cell row is read ``FOR UPDATE`` before
      it is changed.  A missing cell is inserted inside a SAVEPOINT; a
      concurrent insert of the same cell loses on the UNIQUE constraint,
      rolls back only the savepoint and re-selects the winner's row.
    - ``version`` is a SQLAlchemy version counter; a write that raced
      past the lock surfaces as StaleDataError and is retried by the
      coordinator.

Failure modes:
    - ValueError: quantity is not a positive integer.
    - InsufficientStockError: debit/adjust would take the cell below zero.
    - NotFoundError: product or warehouse does not exist.
    - ConflictError: assign() on a cell that already exists.

Audit relevance:
    Summing the movements of a cell reproduces its quantity.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.exceptions import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.inventory import (
    InventoryMovement,
    InventoryRecord,
    MovementType,
)
from fulfillment_kernel.models.reference import Product, Warehouse
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.reorder_service import ReorderTrigger

logger = get_logger("services.ledger")

DEFAULT_LOW_STOCK_THRESHOLD = 10


def _require_positive_int(value: int, name: str = "quantity") -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")


class InventoryLedger(BaseService):
    """
    Stock ledger over (product, warehouse) cells.

    Contract:
        Flush-only; the caller's transaction decides whether a mutation,
        its movement and any reorder suggestion it raised are kept.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        reorder_trigger: ReorderTrigger | None = None,
        default_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ):
        super().__init__(session)
        self._clock = clock
        self._reorder = reorder_trigger or ReorderTrigger(session, clock)
        self._default_threshold = default_threshold
        self._opened_cells: set[UUID] = set()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(self, product_id: UUID, warehouse_id: UUID) -> int:
        """Current quantity; 0 for a cell that was never opened."""
        quantity = self.session.execute(
            select(InventoryRecord.quantity).where(
                InventoryRecord.product_id == product_id,
                InventoryRecord.warehouse_id == warehouse_id,
            )
        ).scalar_one_or_none()
        return quantity or 0

    def threshold_for(self, record: InventoryRecord) -> int:
        if record.reorder_threshold is not None:
            return record.reorder_threshold
        return self._default_threshold

    def is_low_stock(self, product_id: UUID, warehouse_id: UUID) -> bool:
        """``quantity < threshold`` for an opened cell; False otherwise."""
        record = self._find_cell(product_id, warehouse_id, lock=False)
        if record is None:
            return False
        return record.quantity < self.threshold_for(record)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def credit(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        reference: str | None,
        actor_id: UUID | None = None,
        movement_type: MovementType = MovementType.PRODUCTION_CREDIT,
    ) -> InventoryMovement:
        """Add stock, opening the cell if needed."""
        _require_positive_int(quantity)
        record = self._lock_cell(product_id, warehouse_id, create=True)
        return self._apply(record, quantity, movement_type, reference, actor_id)

    def debit(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        reference: str | None,
        actor_id: UUID | None = None,
        movement_type: MovementType = MovementType.FULFILLMENT_DEBIT,
    ) -> InventoryMovement:
        """
        Remove stock.

        Raises:
            InsufficientStockError: quantity exceeds the cell; nothing is
                written.
        """
        _require_positive_int(quantity)
        record = self._lock_cell(product_id, warehouse_id, create=False)
        available = record.quantity if record is not None else 0
        if record is None or quantity > available:
            logger.info(
                "ledger_debit_rejected",
                extra={
                    "product_id": str(product_id),
                    "warehouse_id": str(warehouse_id),
                    "requested": quantity,
                    "available": available,
                },
            )
            raise InsufficientStockError(product_id, warehouse_id, quantity, available)
        return self._apply(record, -quantity, movement_type, reference, actor_id)

    def assign(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        initial_quantity: int = 0,
        actor_id: UUID | None = None,
        reorder_threshold: int | None = None,
    ) -> InventoryRecord:
        """
        Open a cell for a product at a warehouse.

        Raises:
            ConflictError: the product is already stocked there.
        """
        if isinstance(initial_quantity, bool) or not isinstance(initial_quantity, int) or initial_quantity < 0:
            raise ValueError(f"initial_quantity must be a non-negative integer, got {initial_quantity!r}")
        if self._find_cell(product_id, warehouse_id, lock=True) is not None:
            raise ConflictError(
                "inventory_record",
                f"{product_id}:{warehouse_id}",
                reason="product is already assigned to this warehouse",
            )
        record = self._lock_cell(product_id, warehouse_id, create=True)
        if reorder_threshold is not None:
            self._validate_threshold(reorder_threshold)
            record.reorder_threshold = reorder_threshold
            self.session.flush()
        if initial_quantity > 0:
            self._apply(
                record, initial_quantity, MovementType.ASSIGNMENT, "assignment", actor_id
            )
        else:
            self._opened_cells.discard(record.id)
            self._notify(record, previous_quantity=None, previous_threshold=None)
        return record

    def adjust(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        delta: int,
        reference: str | None,
        actor_id: UUID | None = None,
    ) -> InventoryMovement:
        """Signed manual correction (stock count, damage write-off)."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValueError(f"delta must be a non-zero integer, got {delta!r}")
        record = self._lock_cell(product_id, warehouse_id, create=delta > 0)
        available = record.quantity if record is not None else 0
        if record is None or available + delta < 0:
            raise InsufficientStockError(product_id, warehouse_id, -delta, available)
        return self._apply(record, delta, MovementType.ADJUSTMENT, reference, actor_id)

    def set_threshold(
        self, product_id: UUID, warehouse_id: UUID, threshold: int | None
    ) -> InventoryRecord:
        """
        Set the cell's low-stock threshold; None reverts to the default.

        The predicate is re-evaluated against the new threshold.
        """
        if threshold is not None:
            self._validate_threshold(threshold)
        record = self._lock_cell(product_id, warehouse_id, create=True)
        previous_threshold = self.threshold_for(record)
        record.reorder_threshold = threshold
        self.session.flush()
        fresh = record.id in self._opened_cells
        self._opened_cells.discard(record.id)
        self._notify(
            record,
            previous_quantity=None if fresh else record.quantity,
            previous_threshold=previous_threshold,
        )
        return record

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_threshold(threshold: int) -> None:
        if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0:
            raise ValueError(f"threshold must be a non-negative integer, got {threshold!r}")

    def _find_cell(
        self, product_id: UUID, warehouse_id: UUID, lock: bool
    ) -> InventoryRecord | None:
        stmt = select(InventoryRecord).where(
            InventoryRecord.product_id == product_id,
            InventoryRecord.warehouse_id == warehouse_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_cell(
        self, product_id: UUID, warehouse_id: UUID, create: bool
    ) -> InventoryRecord | None:
        record = self._find_cell(product_id, warehouse_id, lock=True)
        if record is not None or not create:
            return record

        if self.session.get(Product, product_id) is None:
            raise NotFoundError("product", str(product_id))
        if self.session.get(Warehouse, warehouse_id) is None:
            raise NotFoundError("warehouse", str(warehouse_id))

        savepoint = self.session.begin_nested()
        try:
            record = InventoryRecord(
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity=0,
            )
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
            self._opened_cells.add(record.id)
            logger.debug(
                "ledger_cell_opened",
                extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )
            return record
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "ledger_cell_race_retry",
                extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )
            record = self._find_cell(product_id, warehouse_id, lock=True)
            if record is None:
                raise
            return record

    def _apply(
        self,
        record: InventoryRecord,
        delta: int,
        movement_type: MovementType,
        reference: str | None,
        actor_id: UUID | None,
    ) -> InventoryMovement:
        previous = record.quantity
        record.quantity = previous + delta

        next_seq = self.session.execute(
            select(func.coalesce(func.max(InventoryMovement.seq) + 1, 0)).where(
                InventoryMovement.product_id == record.product_id,
                InventoryMovement.warehouse_id == record.warehouse_id,
            )
        ).scalar_one()

        movement = InventoryMovement(
            product_id=record.product_id,
            warehouse_id=record.warehouse_id,
            seq=next_seq,
            delta=delta,
            quantity_after=record.quantity,
            movement_type=movement_type.value,
            reference_id=reference,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
        )
        self.session.add(movement)
        self.session.flush()

        logger.info(
            "ledger_credited" if delta > 0 else "ledger_debited",
            extra={
                "product_id": str(record.product_id),
                "warehouse_id": str(record.warehouse_id),
                "delta": delta,
                "quantity_after": record.quantity,
                "movement_type": movement_type.value,
                "reference_id": reference,
            },
        )

        if record.id in self._opened_cells:
            self._opened_cells.discard(record.id)
            self._notify(record, previous_quantity=None, previous_threshold=None)
        else:
            self._notify(record, previous_quantity=previous, previous_threshold=None)
        return movement

    def _notify(
        self,
        record: InventoryRecord,
        previous_quantity: int | None,
        previous_threshold: int | None,
    ) -> None:
        threshold = self.threshold_for(record)
        if previous_quantity is None:
            # A freshly opened cell was not tracked before.
            was_low = False
        else:
            was_low = previous_quantity < (
                previous_threshold if previous_threshold is not None else threshold
            )
        self._reorder.evaluate(
            record.product_id,
            record.warehouse_id,
            was_low=was_low,
            is_low=record.quantity < threshold,
            quantity=record.quantity,
            threshold=threshold,
        )
