"""
TraceabilityService -- cross-entity links between orders, purchase order
lines, production orders and shipments.

Responsibility:
    Creates production orders from approved purchase order lines, and
    answers lineage questions from stored foreign keys.

Architecture position:
    Kernel > Services.  Lineage reads are delegated to DocumentSelector.

Invariants enforced:
    A purchase order line has at most one live (non-cancelled) production
    order.  Checked under a row lock on the line and guaranteed by the
    UNIQUE ``live_detail_key`` column: the insert runs in a SAVEPOINT and
    a constraint violation becomes DuplicateProductionError.

Failure modes:
    - NotFoundError: unknown line or order.
    - InvalidTransitionError: the owning purchase order is not approved.
    - DuplicateProductionError: a live production order already exists.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.actor import ActorContext
from fulfillment_kernel.domain.authorization import (
    CREATE_PRODUCTION_FROM_DETAIL,
    require_action,
)
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.domain.dtos import Lineage, ProductionOrderRecord
from fulfillment_kernel.domain.workflow import EntityType
from fulfillment_kernel.domain.workflows import PRODUCTION_ORDER_WORKFLOW
from fulfillment_kernel.exceptions import (
    DuplicateProductionError,
    InvalidTransitionError,
    NotFoundError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.order import Order
from fulfillment_kernel.models.production import ProductionOrder
from fulfillment_kernel.models.purchase_order import PurchaseOrder, PurchaseOrderDetail
from fulfillment_kernel.selectors.document_selector import DocumentSelector
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.history_service import HistoryLog

logger = get_logger("services.traceability")


class TraceabilityService(BaseService):
    """Production-from-line creation and lineage queries."""

    def __init__(self, session: Session, clock: Clock, history: HistoryLog | None = None):
        super().__init__(session)
        self._clock = clock
        self._history = history or HistoryLog(session, clock)
        self._selector = DocumentSelector(session)

    def _live_production_for(self, detail_id: UUID) -> ProductionOrder | None:
        return self.session.execute(
            select(ProductionOrder).where(ProductionOrder.live_detail_key == detail_id)
        ).scalar_one_or_none()

    def create_production_from_detail(
        self, purchase_order_detail_id: UUID, actor: ActorContext
    ) -> ProductionOrder:
        """
        Open a production order for one approved purchase order line.

        Quantity is the line quantity; the finished goods are credited to
        the purchase order's warehouse on completion.
        """
        require_action(actor, CREATE_PRODUCTION_FROM_DETAIL, EntityType.PRODUCTION_ORDER.value)

        detail = self.session.get(PurchaseOrderDetail, purchase_order_detail_id)
        if detail is None:
            raise NotFoundError("purchase_order_detail", str(purchase_order_detail_id))

        # Same lock order as StatusTransitionEngine: purchase order, then line.
        po = self.session.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == detail.purchase_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        detail = self.session.execute(
            select(PurchaseOrderDetail)
            .where(PurchaseOrderDetail.id == purchase_order_detail_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

        if po.status != "approved":
            raise InvalidTransitionError(
                EntityType.PRODUCTION_ORDER.value,
                str(purchase_order_detail_id),
                None,
                PRODUCTION_ORDER_WORKFLOW.initial_state,
                reason=f"purchase order {po.id} is {po.status}, not approved",
            )

        existing = self._live_production_for(detail.id)
        if existing is not None:
            logger.info(
                "duplicate_production_rejected",
                extra={
                    "purchase_order_detail_id": str(detail.id),
                    "existing_production_id": str(existing.id),
                },
            )
            raise DuplicateProductionError(str(detail.id), str(existing.id))

        savepoint = self.session.begin_nested()
        try:
            production = ProductionOrder(
                product_id=detail.product_id,
                warehouse_id=po.warehouse_id,
                purchase_order_detail_id=detail.id,
                live_detail_key=detail.id,
                quantity=detail.quantity,
                status=PRODUCTION_ORDER_WORKFLOW.initial_state,
                created_by_id=actor.actor_id,
            )
            self.session.add(production)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            existing = self._live_production_for(detail.id)
            raise DuplicateProductionError(
                str(detail.id), str(existing.id) if existing is not None else None
            ) from None

        self._history.append(
            EntityType.PRODUCTION_ORDER,
            production.id,
            None,
            production.status,
            actor,
            note=f"from purchase order line {detail.id}",
        )

        logger.info(
            "production_order_created_from_detail",
            extra={
                "production_order_id": str(production.id),
                "purchase_order_id": str(po.id),
                "purchase_order_detail_id": str(detail.id),
                "quantity": production.quantity,
            },
        )
        return production

    def lineage(self, order_id: UUID) -> Lineage:
        if self.session.get(Order, order_id) is None:
            raise NotFoundError(EntityType.ORDER.value, str(order_id))
        return self._selector.lineage(order_id)

    def detail_lineage(self, purchase_order_detail_id: UUID) -> list[ProductionOrderRecord]:
        if self.session.get(PurchaseOrderDetail, purchase_order_detail_id) is None:
            raise NotFoundError("purchase_order_detail", str(purchase_order_detail_id))
        return self._selector.detail_lineage(purchase_order_detail_id)
