"""
Module: fulfillment_kernel.models.order
Responsibility: ORM persistence for customer orders and their lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Order is the single authoritative owner of fulfillment status; shipments
carry logistics metadata only.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, TrackedBase, UUIDString


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Order(TrackedBase):
    """
    Customer order.

    Contract:
        ``status`` changes only through StatusTransitionEngine.  ``version``
        is incremented by SQLAlchemy on every UPDATE and is the value
        callers pass back as ``expected_version``.
    """

    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_order_customer", "customer_id"),
        Index("idx_order_status", "status"),
    )

    customer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    lines: Mapped[list["OrderLine"]] = relationship(
        back_populates="order",
        order_by="OrderLine.line_no",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status}>"


class OrderLine(Base):
    """One product line of a customer order."""

    __tablename__ = "order_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_line_quantity_positive"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False, index=True
    )
    line_no: Mapped[int] = mapped_column(BigInteger, nullable=False)
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    order: Mapped[Order] = relationship(back_populates="lines")
