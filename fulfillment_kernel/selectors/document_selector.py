"""
Module: fulfillment_kernel.selectors.document_selector
Responsibility: DTO views of workflow entities, their status history, and
    the order lineage graph reconstructed from stored foreign keys.
Architecture position: Kernel > Selectors.

Lineage links are read only from columns written at creation time:
    Shipment.order_id, PurchaseOrder.source_order_id,
    ProductionOrder.purchase_order_detail_id.
Nothing is inferred from timestamps or product matches.
"""

from uuid import UUID

from sqlalchemy import select

from fulfillment_kernel.domain.dtos import (
    Lineage,
    OrderLineRecord,
    OrderRecord,
    ProductionOrderRecord,
    PurchaseOrderRecord,
    ReturnRequestRecord,
    ShipmentRecord,
    StatusHistoryRecord,
)
from fulfillment_kernel.models.order import Order
from fulfillment_kernel.models.production import ProductionOrder
from fulfillment_kernel.models.purchase_order import PurchaseOrder, PurchaseOrderDetail
from fulfillment_kernel.models.returns import ReturnRequest
from fulfillment_kernel.models.shipment import Shipment
from fulfillment_kernel.models.status_history import StatusHistory
from fulfillment_kernel.selectors.base import BaseSelector


def order_record(order: Order) -> OrderRecord:
    return OrderRecord(
        id=order.id,
        customer_id=order.customer_id,
        status=order.status,
        version=order.version,
        lines=tuple(
            OrderLineRecord(
                id=line.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in order.lines
        ),
    )


def purchase_order_record(po: PurchaseOrder) -> PurchaseOrderRecord:
    return PurchaseOrderRecord(
        id=po.id,
        warehouse_id=po.warehouse_id,
        supplier_id=po.supplier_id,
        source_order_id=po.source_order_id,
        status=po.status,
        detail_ids=tuple(d.id for d in po.details),
    )


def production_order_record(production: ProductionOrder) -> ProductionOrderRecord:
    return ProductionOrderRecord(
        id=production.id,
        product_id=production.product_id,
        warehouse_id=production.warehouse_id,
        purchase_order_detail_id=production.purchase_order_detail_id,
        quantity=production.quantity,
        status=production.status,
        version=production.version,
    )


def shipment_record(shipment: Shipment) -> ShipmentRecord:
    return ShipmentRecord(
        id=shipment.id,
        order_id=shipment.order_id,
        warehouse_id=shipment.warehouse_id,
        carrier_id=shipment.carrier_id,
        tracking_number=shipment.tracking_number,
    )


def return_request_record(request: ReturnRequest) -> ReturnRequestRecord:
    return ReturnRequestRecord(
        id=request.id,
        order_id=request.order_id,
        product_id=request.product_id,
        quantity=request.quantity,
        reason=request.reason,
        status=request.status,
        version=request.version,
    )


def history_record(row: StatusHistory) -> StatusHistoryRecord:
    return StatusHistoryRecord(
        id=row.id,
        seq=row.seq,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        old_status=row.old_status,
        new_status=row.new_status,
        actor_id=row.actor_id,
        actor_role=row.actor_role,
        occurred_at=row.occurred_at,
        note=row.note,
    )


class DocumentSelector(BaseSelector):
    """Read-side queries over workflow entities."""

    def get_order(self, order_id: UUID) -> OrderRecord | None:
        order = self.session.get(Order, order_id)
        return order_record(order) if order is not None else None

    def get_purchase_order(self, purchase_order_id: UUID) -> PurchaseOrderRecord | None:
        po = self.session.get(PurchaseOrder, purchase_order_id)
        return purchase_order_record(po) if po is not None else None

    def get_production_order(self, production_id: UUID) -> ProductionOrderRecord | None:
        production = self.session.get(ProductionOrder, production_id)
        return production_order_record(production) if production is not None else None

    def history(self, entity_type: str, entity_id: UUID) -> list[StatusHistoryRecord]:
        rows = self.session.execute(
            select(StatusHistory)
            .where(
                StatusHistory.entity_type == entity_type,
                StatusHistory.entity_id == entity_id,
            )
            .order_by(StatusHistory.occurred_at, StatusHistory.seq)
        ).scalars()
        return [history_record(row) for row in rows]

    def lineage(self, order_id: UUID) -> Lineage:
        """
        Shipments of the order, purchase orders raised for it, and the
        production orders working those purchase orders' lines.

        The caller checks that the order exists.
        """
        shipments = self.session.execute(
            select(Shipment)
            .where(Shipment.order_id == order_id)
            .order_by(Shipment.shipped_at, Shipment.tracking_number)
        ).scalars().all()

        purchase_orders = self.session.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.source_order_id == order_id)
            .order_by(PurchaseOrder.created_at, PurchaseOrder.id)
        ).scalars().all()

        productions: list[ProductionOrder] = []
        po_ids = [po.id for po in purchase_orders]
        if po_ids:
            productions = self.session.execute(
                select(ProductionOrder)
                .join(
                    PurchaseOrderDetail,
                    ProductionOrder.purchase_order_detail_id == PurchaseOrderDetail.id,
                )
                .where(PurchaseOrderDetail.purchase_order_id.in_(po_ids))
                .order_by(ProductionOrder.created_at, ProductionOrder.id)
            ).scalars().all()

        return Lineage(
            order_id=order_id,
            purchase_orders=tuple(purchase_order_record(po) for po in purchase_orders),
            production_orders=tuple(production_order_record(p) for p in productions),
            shipments=tuple(shipment_record(s) for s in shipments),
        )

    def detail_lineage(self, purchase_order_detail_id: UUID) -> list[ProductionOrderRecord]:
        """Every production order ever created for the line, cancelled ones included."""
        rows = self.session.execute(
            select(ProductionOrder)
            .where(ProductionOrder.purchase_order_detail_id == purchase_order_detail_id)
            .order_by(ProductionOrder.created_at, ProductionOrder.id)
        ).scalars()
        return [production_order_record(p) for p in rows]

    def approved_purchase_orders(self, supplier_id: UUID | None = None) -> list[PurchaseOrderRecord]:
        """Approved purchase orders, oldest first: the work queue for production."""
        stmt = select(PurchaseOrder).where(PurchaseOrder.status == "approved")
        if supplier_id is not None:
            stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
        stmt = stmt.order_by(PurchaseOrder.created_at, PurchaseOrder.id)
        return [purchase_order_record(po) for po in self.session.execute(stmt).scalars()]
