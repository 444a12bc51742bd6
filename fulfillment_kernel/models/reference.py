"""
Module: fulfillment_kernel.models.reference
Responsibility: Reference entities that key the inventory ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Product and Warehouse identity is all the kernel needs; catalogue and
location details belong to the presentation layer.
"""

from decimal import Decimal

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base


class Product(Base):
    """A sellable / producible item."""

    __tablename__ = "products"

    sku: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Product {self.sku}>"


class Warehouse(Base):
    """A stocking location."""

    __tablename__ = "warehouses"

    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def __repr__(self) -> str:
        return f"<Warehouse {self.code}>"
