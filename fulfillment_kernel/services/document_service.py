"""
DocumentService -- creation of workflow entities and shipments.

Responsibility:
    Customer orders, purchase orders, stand-alone production orders,
    shipments and return requests.  Every workflow entity starts in its
    workflow's initial status with a creation history row
    (None -> initial) written in the same transaction.

Architecture position:
    Kernel > Services.  Role checks come from ``ACTION_POLICY``.

Invariants enforced:
    - Replaying an entity's history from creation reproduces its status.
    - Creating a purchase order clears the outstanding reorder suggestions
      for the products it orders at its warehouse.
    - A shipment can only be created for a confirmed order; a return only
      against a delivered order the customer placed.
"""

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment_kernel.domain import authorization as policy
from fulfillment_kernel.domain.actor import ActorContext, Role
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.domain.dtos import OrderLineInput, PurchaseOrderLineInput
from fulfillment_kernel.domain.workflow import EntityType
from fulfillment_kernel.domain.workflows import get_workflow
from fulfillment_kernel.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.order import Order, OrderLine
from fulfillment_kernel.models.production import ProductionOrder
from fulfillment_kernel.models.purchase_order import PurchaseOrder, PurchaseOrderDetail
from fulfillment_kernel.models.reference import Product, Warehouse
from fulfillment_kernel.models.returns import ReturnRequest
from fulfillment_kernel.models.shipment import Shipment
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.history_service import HistoryLog
from fulfillment_kernel.services.reorder_service import ReorderTrigger

logger = get_logger("services.documents")


def _require_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError(f"quantity must be a positive integer, got {quantity!r}")


class DocumentService(BaseService):
    """Creates workflow entities in their initial status."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        history: HistoryLog | None = None,
        reorder_trigger: ReorderTrigger | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._history = history or HistoryLog(session, clock)
        self._reorder = reorder_trigger or ReorderTrigger(session, clock)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _product(self, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("product", str(product_id))
        return product

    def _warehouse(self, warehouse_id: UUID) -> Warehouse:
        warehouse = self.session.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise NotFoundError("warehouse", str(warehouse_id))
        return warehouse

    def _lock(self, model, entity_type: str, entity_id: UUID):
        entity = self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entity is None:
            raise NotFoundError(entity_type, str(entity_id))
        return entity

    def _record_creation(
        self, entity_type: EntityType, entity, actor: ActorContext, note: str | None = None
    ) -> None:
        self._history.append(entity_type, entity.id, None, entity.status, actor, note)
        logger.info(
            "workflow_entity_created",
            extra={
                "entity_type": entity_type.value,
                "entity_id": str(entity.id),
                "status": entity.status,
                "created_by_id": str(actor.actor_id),
            },
        )

    # ------------------------------------------------------------------
    # Customer order
    # ------------------------------------------------------------------

    def create_order(
        self,
        actor: ActorContext,
        lines: Iterable[OrderLineInput],
        customer_id: UUID | None = None,
        note: str | None = None,
    ) -> Order:
        """
        Place an order.  Lines are priced from the product catalogue.

        Only an admin may place an order on behalf of another customer.
        """
        policy.require_action(actor, policy.CREATE_ORDER, EntityType.ORDER.value)
        lines = list(lines)
        if not lines:
            raise ValueError("an order needs at least one line")
        if customer_id is not None and customer_id != actor.actor_id and actor.role != Role.ADMIN:
            raise UnauthorizedError(
                actor.role.value, "create_order_for_other_customer", EntityType.ORDER.value
            )

        order = Order(
            customer_id=customer_id or actor.actor_id,
            status=get_workflow(EntityType.ORDER).initial_state,
            created_by_id=actor.actor_id,
        )
        self.session.add(order)
        self.session.flush()

        for line_no, line in enumerate(lines):
            _require_quantity(line.quantity)
            product = self._product(line.product_id)
            self.session.add(
                OrderLine(
                    order_id=order.id,
                    line_no=line_no,
                    product_id=product.id,
                    quantity=line.quantity,
                    unit_price=product.unit_price,
                )
            )
        self.session.flush()
        self.session.refresh(order, ["lines"])

        self._record_creation(EntityType.ORDER, order, actor, note)
        return order

    # ------------------------------------------------------------------
    # Purchase order
    # ------------------------------------------------------------------

    def create_purchase_order(
        self,
        actor: ActorContext,
        warehouse_id: UUID,
        supplier_id: UUID,
        details: Iterable[PurchaseOrderLineInput],
        source_order_id: UUID | None = None,
        note: str | None = None,
    ) -> PurchaseOrder:
        """
        Issue a purchase order to a supplier for one warehouse.

        ``source_order_id`` links the purchase order to the customer order
        it replenishes, for lineage.
        """
        policy.require_action(actor, policy.CREATE_PURCHASE_ORDER, EntityType.PURCHASE_ORDER.value)
        details = list(details)
        if not details:
            raise ValueError("a purchase order needs at least one line")
        self._warehouse(warehouse_id)
        if source_order_id is not None and self.session.get(Order, source_order_id) is None:
            raise NotFoundError(EntityType.ORDER.value, str(source_order_id))

        po = PurchaseOrder(
            warehouse_id=warehouse_id,
            supplier_id=supplier_id,
            source_order_id=source_order_id,
            status=get_workflow(EntityType.PURCHASE_ORDER).initial_state,
            created_by_id=actor.actor_id,
        )
        self.session.add(po)
        self.session.flush()

        for line_no, detail in enumerate(details):
            _require_quantity(detail.quantity)
            unit_price = Decimal(detail.unit_price)
            if unit_price < 0:
                raise ValueError(f"unit_price must not be negative, got {unit_price}")
            self._product(detail.product_id)
            self.session.add(
                PurchaseOrderDetail(
                    purchase_order_id=po.id,
                    line_no=line_no,
                    product_id=detail.product_id,
                    quantity=detail.quantity,
                    unit_price=unit_price,
                )
            )
        self.session.flush()
        self.session.refresh(po, ["details"])

        self._record_creation(EntityType.PURCHASE_ORDER, po, actor, note)
        self._reorder.clear_for_purchase_order(
            warehouse_id, [d.product_id for d in po.details]
        )
        return po

    # ------------------------------------------------------------------
    # Production order
    # ------------------------------------------------------------------

    def create_production_order(
        self,
        actor: ActorContext,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        note: str | None = None,
    ) -> ProductionOrder:
        """Stand-alone production run, not tied to a purchase order line."""
        policy.require_action(
            actor, policy.CREATE_PRODUCTION_ORDER, EntityType.PRODUCTION_ORDER.value
        )
        _require_quantity(quantity)
        self._product(product_id)
        self._warehouse(warehouse_id)

        production = ProductionOrder(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            status=get_workflow(EntityType.PRODUCTION_ORDER).initial_state,
            created_by_id=actor.actor_id,
        )
        self.session.add(production)
        self.session.flush()

        self._record_creation(EntityType.PRODUCTION_ORDER, production, actor, note)
        return production

    # ------------------------------------------------------------------
    # Shipment
    # ------------------------------------------------------------------

    def create_shipment(
        self,
        actor: ActorContext,
        order_id: UUID,
        warehouse_id: UUID,
        carrier_id: UUID,
        tracking_number: str,
        estimated_delivery=None,
    ) -> Shipment:
        """
        Record the logistics data for shipping a confirmed order.

        The order's own confirmed -> shipped transition debits the stock.
        """
        policy.require_action(actor, policy.CREATE_SHIPMENT, "shipment")
        if not tracking_number:
            raise ValueError("tracking_number is required")
        order = self._lock(Order, EntityType.ORDER.value, order_id)
        if order.status != "confirmed":
            raise InvalidTransitionError(
                EntityType.ORDER.value,
                str(order.id),
                order.status,
                "shipped",
                reason="shipments are created for confirmed orders only",
            )
        self._warehouse(warehouse_id)

        savepoint = self.session.begin_nested()
        try:
            shipment = Shipment(
                order_id=order.id,
                warehouse_id=warehouse_id,
                carrier_id=carrier_id,
                tracking_number=tracking_number,
                shipped_at=self._clock.now(),
                estimated_delivery=estimated_delivery,
                created_by_id=actor.actor_id,
            )
            self.session.add(shipment)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise ConflictError(
                "shipment", tracking_number, reason="tracking number already in use"
            ) from None

        logger.info(
            "shipment_created",
            extra={
                "shipment_id": str(shipment.id),
                "order_id": str(order.id),
                "warehouse_id": str(warehouse_id),
                "tracking_number": tracking_number,
            },
        )
        return shipment

    # ------------------------------------------------------------------
    # Return request
    # ------------------------------------------------------------------

    def create_return(
        self,
        actor: ActorContext,
        order_id: UUID,
        product_id: UUID,
        quantity: int,
        reason: str,
    ) -> ReturnRequest:
        """Request the return of part of a delivered order."""
        policy.require_action(actor, policy.CREATE_RETURN, EntityType.RETURN_REQUEST.value)
        _require_quantity(quantity)
        if not reason:
            raise ValueError("a return needs a reason")

        order = self._lock(Order, EntityType.ORDER.value, order_id)
        if actor.role != Role.ADMIN and order.customer_id != actor.actor_id:
            raise UnauthorizedError(
                actor.role.value, policy.CREATE_RETURN, EntityType.ORDER.value
            )
        if order.status != "delivered":
            raise InvalidTransitionError(
                EntityType.RETURN_REQUEST.value,
                str(order.id),
                None,
                get_workflow(EntityType.RETURN_REQUEST).initial_state,
                reason=f"order is {order.status}; only delivered orders can be returned",
            )

        ordered = sum(line.quantity for line in order.lines if line.product_id == product_id)
        if ordered == 0:
            raise NotFoundError("order_line", f"{order.id}:{product_id}")
        already_requested = self.session.execute(
            select(func.coalesce(func.sum(ReturnRequest.quantity), 0)).where(
                ReturnRequest.order_id == order.id,
                ReturnRequest.product_id == product_id,
                ReturnRequest.status != "rejected",
            )
        ).scalar_one()
        if quantity + already_requested > ordered:
            raise ValueError(
                f"cannot return {quantity} of product {product_id}: {ordered} ordered, "
                f"{already_requested} already requested"
            )

        request = ReturnRequest(
            order_id=order.id,
            product_id=product_id,
            quantity=quantity,
            reason=reason,
            status=get_workflow(EntityType.RETURN_REQUEST).initial_state,
            created_by_id=actor.actor_id,
        )
        self.session.add(request)
        self.session.flush()

        self._record_creation(EntityType.RETURN_REQUEST, request, actor)
        return request
