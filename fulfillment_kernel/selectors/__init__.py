"""Read-only selectors returning DTOs."""

from fulfillment_kernel.selectors.base import BaseSelector
from fulfillment_kernel.selectors.document_selector import DocumentSelector
from fulfillment_kernel.selectors.inventory_selector import InventorySelector

__all__ = [
    "BaseSelector",
    "DocumentSelector",
    "InventorySelector",
]
