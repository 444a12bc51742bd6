"""
Module: fulfillment_kernel.models.production
Responsibility: ORM persistence for factory production orders.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    A purchase order line has at most one non-cancelled production order.
    ``live_detail_key`` holds the detail id while the production order is
    live and is cleared on cancellation; its UNIQUE constraint makes a
    second live production order for the same line fail at INSERT even if
    two creators race past the application check.  NULLs do not collide.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase, UUIDString


class ProductionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProductionOrder(TrackedBase):
    """
    Production run for one product, credited to one warehouse on completion.

    Contract:
        ``status`` changes only through StatusTransitionEngine.
    """

    __tablename__ = "production_orders"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_production_quantity_positive"),
        Index("idx_production_detail", "purchase_order_detail_id"),
        Index("idx_production_status", "status"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("warehouses.id"), nullable=False
    )
    purchase_order_detail_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("purchase_order_details.id"), nullable=True
    )
    live_detail_key: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True, unique=True
    )
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<ProductionOrder {self.id} {self.status}>"
