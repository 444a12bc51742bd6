"""
Module: fulfillment_kernel.models.reorder
Responsibility: Reorder suggestions raised when a ledger cell goes low.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    At most one outstanding suggestion per (product, warehouse).
    ``open_key`` is "{product_id}:{warehouse_id}" while the suggestion is
    outstanding and NULL once cleared; it carries a UNIQUE constraint.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base, UUIDString


def open_key_for(product_id: UUID, warehouse_id: UUID) -> str:
    return f"{product_id}:{warehouse_id}"


class ReorderSuggestion(Base):
    """Advisory record that a cell fell below its threshold."""

    __tablename__ = "reorder_suggestions"

    __table_args__ = (
        Index("idx_reorder_cell", "product_id", "warehouse_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("warehouses.id"), nullable=False
    )
    quantity_at_trigger: Mapped[int] = mapped_column(BigInteger, nullable=False)
    threshold: Mapped[int] = mapped_column(BigInteger, nullable=False)
    raised_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cleared_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    clear_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    open_key: Mapped[str | None] = mapped_column(String(80), nullable=True, unique=True)

    @property
    def is_outstanding(self) -> bool:
        return self.cleared_at is None

    def __repr__(self) -> str:
        state = "open" if self.is_outstanding else self.clear_reason
        return f"<ReorderSuggestion {self.product_id}@{self.warehouse_id} {state}>"
