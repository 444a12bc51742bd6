"""
Fulfillment Kernel

The order-fulfillment workflow and inventory ledger behind a multi-role
supply-chain portal:
- Declared status transition tables for every workflow entity
- Per-cell serialized inventory ledger with an append-only movement log
- Deduplicated reorder suggestions derived from the ledger
- Lineage between purchase-order lines, production and shipments
- Append-only status history that replays to current state
"""

__version__ = "0.1.0"
