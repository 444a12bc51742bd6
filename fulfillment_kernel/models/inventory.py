"""
Module: fulfillment_kernel.models.inventory
Responsibility: ORM persistence for ledger cells and the movement log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity >= 0 (CHECK constraint; InventoryLedger checks first).
    - One cell per (product_id, warehouse_id) (UNIQUE constraint).
    - InventoryMovement rows are append-only (db/immutability.py).

Audit relevance:
    Summing ``delta`` over a cell's movements reproduces its quantity;
    ``quantity_after`` records the running balance at each step.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base, UUIDString


class MovementType(str, Enum):
    """Why a ledger cell changed."""

    ASSIGNMENT = "assignment"
    PRODUCTION_CREDIT = "production_credit"
    FULFILLMENT_DEBIT = "fulfillment_debit"
    ADJUSTMENT = "adjustment"


class InventoryRecord(Base):
    """
    Ledger cell: stock of one product at one warehouse.

    Contract:
        Mutated only through InventoryLedger credit/debit/adjust.  Rows are
        locked FOR UPDATE for the duration of a mutation, and ``version``
        is a SQLAlchemy version counter as a second line against lost
        updates.
    """

    __tablename__ = "inventory_records"

    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_inventory_cell"),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        Index("idx_inventory_warehouse", "warehouse_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("warehouses.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Per-cell low-stock threshold; NULL falls back to the configured default
    reorder_threshold: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<InventoryRecord {self.product_id}@{self.warehouse_id}={self.quantity}>"


class InventoryMovement(Base):
    """
    Append-only record of one ledger mutation.

    Guarantees:
        - delta != 0; positive for credits, negative for debits.
        - seq is dense per cell, allocated under the cell lock.
        - Never updated or deleted.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        Index("idx_movement_cell", "product_id", "warehouse_id"),
        UniqueConstraint("product_id", "warehouse_id", "seq", name="uq_movement_cell_seq"),
        Index("idx_movement_reference", "reference_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("warehouses.id"), nullable=False
    )
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)
    delta: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quantity_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    movement_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<InventoryMovement {self.movement_type} {self.delta:+d}>"
