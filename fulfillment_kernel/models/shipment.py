"""
Module: fulfillment_kernel.models.shipment
Responsibility: Logistics metadata for shipping a customer order.
Architecture position: Kernel > Models.  May import from db/base.py only.

A shipment owns no status.  Delivery progress is the status of the Order
it references.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase, UUIDString


class Shipment(TrackedBase):
    """Carrier, origin warehouse and tracking data for an order."""

    __tablename__ = "shipments"

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False, index=True
    )
    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("warehouses.id"), nullable=False
    )
    carrier_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    tracking_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    shipped_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    estimated_delivery: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Shipment {self.tracking_number}>"
