"""Kernel services: flush-only writers called inside the coordinator's transaction."""

from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.document_service import DocumentService
from fulfillment_kernel.services.history_service import HistoryLog
from fulfillment_kernel.services.ledger_service import InventoryLedger
from fulfillment_kernel.services.reorder_service import ReorderTrigger
from fulfillment_kernel.services.side_effects import SideEffectRegistry, build_default_registry
from fulfillment_kernel.services.traceability_service import TraceabilityService
from fulfillment_kernel.services.transition_engine import StatusTransitionEngine

__all__ = [
    "BaseService",
    "DocumentService",
    "HistoryLog",
    "InventoryLedger",
    "ReorderTrigger",
    "SideEffectRegistry",
    "StatusTransitionEngine",
    "TraceabilityService",
    "build_default_registry",
]
