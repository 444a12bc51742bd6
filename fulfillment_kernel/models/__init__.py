"""
Module: fulfillment_kernel.models
Responsibility: Import every ORM model so Base.metadata is complete.
"""

from fulfillment_kernel.models.inventory import (
    InventoryMovement,
    InventoryRecord,
    MovementType,
)
from fulfillment_kernel.models.order import Order, OrderLine, OrderStatus
from fulfillment_kernel.models.production import ProductionOrder, ProductionStatus
from fulfillment_kernel.models.purchase_order import (
    PurchaseOrder,
    PurchaseOrderDetail,
    PurchaseOrderStatus,
)
from fulfillment_kernel.models.reference import Product, Warehouse
from fulfillment_kernel.models.reorder import ReorderSuggestion, open_key_for
from fulfillment_kernel.models.returns import ReturnRequest, ReturnStatus
from fulfillment_kernel.models.shipment import Shipment
from fulfillment_kernel.models.status_history import StatusHistory

__all__ = [
    "InventoryMovement",
    "InventoryRecord",
    "MovementType",
    "Order",
    "OrderLine",
    "OrderStatus",
    "ProductionOrder",
    "ProductionStatus",
    "Product",
    "PurchaseOrder",
    "PurchaseOrderDetail",
    "PurchaseOrderStatus",
    "ReorderSuggestion",
    "ReturnRequest",
    "ReturnStatus",
    "Shipment",
    "StatusHistory",
    "Warehouse",
    "open_key_for",
]
