"""
Module: fulfillment_kernel.models.purchase_order
Responsibility: ORM persistence for purchase orders issued by a warehouse to
    a supplier, and their detail lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Traceability:
    ``source_order_id`` optionally records the customer order a purchase
    order replenishes; production orders reference individual detail lines.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, TrackedBase, UUIDString


class PurchaseOrderStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class PurchaseOrder(TrackedBase):
    """Purchase order; ``status`` changes only through StatusTransitionEngine."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        Index("idx_po_warehouse", "warehouse_id"),
        Index("idx_po_supplier", "supplier_id"),
        Index("idx_po_source_order", "source_order_id"),
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("warehouses.id"), nullable=False
    )
    supplier_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    source_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    details: Mapped[list["PurchaseOrderDetail"]] = relationship(
        back_populates="purchase_order",
        order_by="PurchaseOrderDetail.line_no",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_amount(self) -> Decimal:
        return sum((d.quantity * d.unit_price for d in self.details), Decimal("0"))

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.id} {self.status}>"


class PurchaseOrderDetail(Base):
    """One product line of a purchase order."""

    __tablename__ = "purchase_order_details"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_po_detail_quantity_positive"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=False, index=True
    )
    line_no: Mapped[int] = mapped_column(BigInteger, nullable=False)
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    purchase_order: Mapped[PurchaseOrder] = relationship(back_populates="details")
