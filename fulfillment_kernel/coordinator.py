"""
FulfillmentCoordinator -- the in-process surface of the fulfillment kernel.

Responsibility:
    One method per public operation.  Each call runs in its own
    transaction (``session_scope``): validate, mutate, append history and
    run side effects, then commit, or roll everything back.  Transient
    persistence failures are retried a bounded number of times and then
    surface as ConflictError.

Architecture position:
    Kernel > Facade.  The only module that opens sessions.  Services
    flush; this module commits.  ORM instances never leave it: every
    result is a frozen DTO from ``domain/dtos.py``.

Usage:
    config = load_config("fulfillment.yaml")
    coordinator = FulfillmentCoordinator.from_config(config, create_schema=True)
    warehouse = ActorContext(actor_id=user_id, role=Role.WAREHOUSE)
    outcome = coordinator.transition(warehouse, "order", order_id, "confirmed")
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from fulfillment_kernel.config import KernelConfig
from fulfillment_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from fulfillment_kernel.db.immutability import register_immutability_listeners
from fulfillment_kernel.domain import authorization as policy
from fulfillment_kernel.domain.actor import ActorContext
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.dtos import (
    Lineage,
    MovementRecord,
    OrderLineInput,
    OrderRecord,
    ProductionOrderRecord,
    PurchaseOrderLineInput,
    PurchaseOrderRecord,
    ReorderSuggestionRecord,
    ReturnRequestRecord,
    ShipmentRecord,
    StatusHistoryRecord,
    StockLevel,
    TransitionOutcome,
)
from fulfillment_kernel.domain.workflow import EntityType
from fulfillment_kernel.exceptions import NotFoundError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_kernel.models.inventory import MovementType
from fulfillment_kernel.selectors.document_selector import (
    DocumentSelector,
    order_record,
    production_order_record,
    purchase_order_record,
    return_request_record,
    shipment_record,
)
from fulfillment_kernel.selectors.inventory_selector import (
    InventorySelector,
    movement_record,
    stock_level,
)
from fulfillment_kernel.services.document_service import DocumentService
from fulfillment_kernel.services.history_service import HistoryLog
from fulfillment_kernel.services.ledger_service import InventoryLedger
from fulfillment_kernel.services.reorder_service import ReorderTrigger
from fulfillment_kernel.services.side_effects import SideEffectRegistry, build_default_registry
from fulfillment_kernel.services.traceability_service import TraceabilityService
from fulfillment_kernel.services.transition_engine import (
    StatusTransitionEngine,
    coerce_uuid,
    resolve_entity_type,
)
from fulfillment_kernel.utils.retry import run_with_retry

logger = get_logger("coordinator")

T = TypeVar("T")


@dataclass
class _Unit:
    """Services wired onto one session."""

    session: Session
    history: HistoryLog
    ledger: InventoryLedger
    engine: StatusTransitionEngine
    documents: DocumentService
    traceability: TraceabilityService
    inventory: InventorySelector
    views: DocumentSelector


class FulfillmentCoordinator:
    """
    Public facade.

    Contract:
        Every method takes the acting ``ActorContext`` first and returns
        DTOs.  Typed FulfillmentKernelError subclasses propagate unchanged;
        nothing is committed when one is raised.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: KernelConfig | None = None,
        clock: Clock | None = None,
        side_effects: SideEffectRegistry | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._config = config or KernelConfig()
        self._clock = clock or SystemClock()
        self._side_effects = side_effects or build_default_registry()
        self._sleep = sleep
        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        config: KernelConfig,
        clock: Clock | None = None,
        create_schema: bool = False,
    ) -> "FulfillmentCoordinator":
        """Initialize the module engine from ``config`` and build a coordinator on it."""
        init_engine_from_url(config.database_url, echo=config.echo_sql)
        if create_schema:
            create_tables()
        return cls(get_session_factory(), config=config, clock=clock)

    @property
    def config(self) -> KernelConfig:
        return self._config

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _unit(self, session: Session) -> _Unit:
        history = HistoryLog(session, self._clock)
        reorder = ReorderTrigger(session, self._clock)
        ledger = InventoryLedger(
            session,
            self._clock,
            reorder_trigger=reorder,
            default_threshold=self._config.default_low_stock_threshold,
        )
        return _Unit(
            session=session,
            history=history,
            ledger=ledger,
            engine=StatusTransitionEngine(
                session, self._clock, ledger, history=history, side_effects=self._side_effects
            ),
            documents=DocumentService(session, self._clock, history=history, reorder_trigger=reorder),
            traceability=TraceabilityService(session, self._clock, history=history),
            inventory=InventorySelector(session, self._config.default_low_stock_threshold),
            views=DocumentSelector(session),
        )

    def _run(
        self,
        operation: str,
        actor: ActorContext,
        work: Callable[[_Unit], T],
        entity_type: str | None = None,
        entity_id: object = None,
    ) -> T:
        def attempt() -> T:
            with session_scope(self._session_factory) as session:
                return work(self._unit(session))

        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor.actor_id),
            actor_role=actor.role.value,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
        ):
            logger.debug("operation_started", extra={"operation": operation})
            return run_with_retry(
                attempt,
                operation=operation,
                entity_type=entity_type or operation,
                entity_id=entity_id if entity_id is not None else "-",
                max_retries=self._config.max_retries,
                backoff_seconds=self._config.retry_backoff_seconds,
                sleep=self._sleep,
            )

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        actor: ActorContext,
        entity_type: EntityType | str,
        entity_id: UUID | str,
        requested_status: str,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        entity_type = resolve_entity_type(entity_type)
        entity_id = coerce_uuid(entity_type.value, entity_id)
        return self._run(
            "transition",
            actor,
            lambda u: u.engine.transition(
                entity_type,
                entity_id,
                requested_status,
                actor,
                note=note,
                expected_version=expected_version,
            ),
            entity_type=entity_type.value,
            entity_id=entity_id,
        )

    def history(
        self, actor: ActorContext, entity_type: EntityType | str, entity_id: UUID | str
    ) -> list[StatusHistoryRecord]:
        entity_type = resolve_entity_type(entity_type)
        entity_id = coerce_uuid(entity_type.value, entity_id)
        return self._run(
            "history",
            actor,
            lambda u: u.views.history(entity_type.value, entity_id),
            entity_type=entity_type.value,
            entity_id=entity_id,
        )

    def replay_status(
        self, actor: ActorContext, entity_type: EntityType | str, entity_id: UUID | str
    ) -> str | None:
        """Status reconstructed from history alone; raises if the walk is broken."""
        entity_type = resolve_entity_type(entity_type)
        entity_id = coerce_uuid(entity_type.value, entity_id)
        return self._run(
            "replay_status",
            actor,
            lambda u: u.history.replay(entity_type, entity_id),
            entity_type=entity_type.value,
            entity_id=entity_id,
        )

    # ------------------------------------------------------------------
    # Inventory ledger
    # ------------------------------------------------------------------

    def ledger_credit(
        self,
        actor: ActorContext,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        reference: str | None = None,
        movement_type: MovementType = MovementType.ADJUSTMENT,
    ) -> MovementRecord:
        """
        Manual stock receipt by warehouse staff.

        Recorded as an ``adjustment`` unless the caller names another
        movement type; production credits come from completing a
        production order.
        """
        policy.require_action(actor, policy.LEDGER_CREDIT, "inventory_record")
        return self._run(
            "ledger_credit",
            actor,
            lambda u: movement_record(
                u.ledger.credit(
                    product_id,
                    warehouse_id,
                    quantity,
                    reference,
                    actor_id=actor.actor_id,
                    movement_type=movement_type,
                )
            ),
            entity_type="inventory_record",
            entity_id=f"{product_id}:{warehouse_id}",
        )

    def ledger_debit(
        self,
        actor: ActorContext,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        reference: str | None = None,
        movement_type: MovementType = MovementType.ADJUSTMENT,
    ) -> MovementRecord:
        """Manual stock removal; shipping debits are written by the order workflow."""
        policy.require_action(actor, policy.LEDGER_DEBIT, "inventory_record")
        return self._run(
            "ledger_debit",
            actor,
            lambda u: movement_record(
                u.ledger.debit(
                    product_id,
                    warehouse_id,
                    quantity,
                    reference,
                    actor_id=actor.actor_id,
                    movement_type=movement_type,
                )
            ),
            entity_type="inventory_record",
            entity_id=f"{product_id}:{warehouse_id}",
        )

    def ledger_query(self, actor: ActorContext, product_id: UUID, warehouse_id: UUID) -> int:
        return self._run(
            "ledger_query",
            actor,
            lambda u: u.ledger.query(product_id, warehouse_id),
            entity_type="inventory_record",
            entity_id=f"{product_id}:{warehouse_id}",
        )

    def assign_product(
        self,
        actor: ActorContext,
        product_id: UUID,
        warehouse_id: UUID,
        initial_quantity: int = 0,
        reorder_threshold: int | None = None,
    ) -> StockLevel:
        policy.require_action(actor, policy.LEDGER_ASSIGN, "inventory_record")
        return self._run(
            "assign_product",
            actor,
            lambda u: stock_level(
                u.ledger.assign(
                    product_id,
                    warehouse_id,
                    initial_quantity,
                    actor_id=actor.actor_id,
                    reorder_threshold=reorder_threshold,
                ),
                self._config.default_low_stock_threshold,
            ),
            entity_type="inventory_record",
            entity_id=f"{product_id}:{warehouse_id}",
        )

    def adjust_stock(
        self,
        actor: ActorContext,
        product_id: UUID,
        warehouse_id: UUID,
        delta: int,
        reference: str | None = None,
    ) -> MovementRecord:
        policy.require_action(actor, policy.LEDGER_ADJUST, "inventory_record")
        return self._run(
            "adjust_stock",
            actor,
            lambda u: movement_record(
                u.ledger.adjust(product_id, warehouse_id, delta, reference, actor_id=actor.actor_id)
            ),
            entity_type="inventory_record",
            entity_id=f"{product_id}:{warehouse_id}",
        )

    def set_reorder_threshold(
        self,
        actor: ActorContext,
        product_id: UUID,
        warehouse_id: UUID,
        threshold: int | None,
    ) -> StockLevel:
        policy.require_action(actor, policy.LEDGER_SET_THRESHOLD, "inventory_record")
        return self._run(
            "set_reorder_threshold",
            actor,
            lambda u: stock_level(
                u.ledger.set_threshold(product_id, warehouse_id, threshold),
                self._config.default_low_stock_threshold,
            ),
            entity_type="inventory_record",
            entity_id=f"{product_id}:{warehouse_id}",
        )

    def stock_levels(
        self, actor: ActorContext, warehouse_id: UUID | None = None
    ) -> list[StockLevel]:
        """Every opened cell, optionally for one warehouse."""
        return self._run(
            "stock_levels", actor, lambda u: u.inventory.stock_levels(warehouse_id)
        )

    def low_stock_items(
        self, actor: ActorContext, warehouse_id: UUID | None = None
    ) -> list[StockLevel]:
        return self._run(
            "low_stock_items", actor, lambda u: u.inventory.low_stock_items(warehouse_id)
        )

    def movements(
        self,
        actor: ActorContext,
        product_id: UUID | None = None,
        warehouse_id: UUID | None = None,
        reference_id: str | None = None,
    ) -> list[MovementRecord]:
        return self._run(
            "movements",
            actor,
            lambda u: u.inventory.movements(product_id, warehouse_id, reference_id),
        )

    def pending_suggestions(
        self, actor: ActorContext, warehouse_id: UUID | None = None
    ) -> list[ReorderSuggestionRecord]:
        return self._run(
            "pending_suggestions",
            actor,
            lambda u: u.inventory.pending_suggestions(warehouse_id),
        )

    # ------------------------------------------------------------------
    # Entity creation
    # ------------------------------------------------------------------

    def create_order(
        self,
        actor: ActorContext,
        lines: Iterable[OrderLineInput],
        customer_id: UUID | None = None,
        note: str | None = None,
    ) -> OrderRecord:
        lines = list(lines)
        return self._run(
            "create_order",
            actor,
            lambda u: order_record(
                u.documents.create_order(actor, lines, customer_id=customer_id, note=note)
            ),
            entity_type=EntityType.ORDER.value,
        )

    def create_purchase_order(
        self,
        actor: ActorContext,
        warehouse_id: UUID,
        supplier_id: UUID,
        details: Iterable[PurchaseOrderLineInput],
        source_order_id: UUID | None = None,
        note: str | None = None,
    ) -> PurchaseOrderRecord:
        details = list(details)
        return self._run(
            "create_purchase_order",
            actor,
            lambda u: purchase_order_record(
                u.documents.create_purchase_order(
                    actor,
                    warehouse_id,
                    supplier_id,
                    details,
                    source_order_id=source_order_id,
                    note=note,
                )
            ),
            entity_type=EntityType.PURCHASE_ORDER.value,
        )

    def create_production_order(
        self,
        actor: ActorContext,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        note: str | None = None,
    ) -> ProductionOrderRecord:
        return self._run(
            "create_production_order",
            actor,
            lambda u: production_order_record(
                u.documents.create_production_order(
                    actor, product_id, warehouse_id, quantity, note=note
                )
            ),
            entity_type=EntityType.PRODUCTION_ORDER.value,
        )

    def create_production_from_detail(
        self, actor: ActorContext, purchase_order_detail_id: UUID
    ) -> ProductionOrderRecord:
        return self._run(
            "create_production_from_detail",
            actor,
            lambda u: production_order_record(
                u.traceability.create_production_from_detail(purchase_order_detail_id, actor)
            ),
            entity_type="purchase_order_detail",
            entity_id=purchase_order_detail_id,
        )

    def create_shipment(
        self,
        actor: ActorContext,
        order_id: UUID,
        warehouse_id: UUID,
        carrier_id: UUID,
        tracking_number: str,
        estimated_delivery=None,
    ) -> ShipmentRecord:
        return self._run(
            "create_shipment",
            actor,
            lambda u: shipment_record(
                u.documents.create_shipment(
                    actor,
                    order_id,
                    warehouse_id,
                    carrier_id,
                    tracking_number,
                    estimated_delivery=estimated_delivery,
                )
            ),
            entity_type=EntityType.ORDER.value,
            entity_id=order_id,
        )

    def create_return(
        self,
        actor: ActorContext,
        order_id: UUID,
        product_id: UUID,
        quantity: int,
        reason: str,
    ) -> ReturnRequestRecord:
        return self._run(
            "create_return",
            actor,
            lambda u: return_request_record(
                u.documents.create_return(actor, order_id, product_id, quantity, reason)
            ),
            entity_type=EntityType.ORDER.value,
            entity_id=order_id,
        )

    # ------------------------------------------------------------------
    # Traceability and lookups
    # ------------------------------------------------------------------

    def lineage(self, actor: ActorContext, order_id: UUID) -> Lineage:
        return self._run(
            "lineage",
            actor,
            lambda u: u.traceability.lineage(order_id),
            entity_type=EntityType.ORDER.value,
            entity_id=order_id,
        )

    def detail_lineage(
        self, actor: ActorContext, purchase_order_detail_id: UUID
    ) -> list[ProductionOrderRecord]:
        return self._run(
            "detail_lineage",
            actor,
            lambda u: u.traceability.detail_lineage(purchase_order_detail_id),
            entity_type="purchase_order_detail",
            entity_id=purchase_order_detail_id,
        )

    def approved_purchase_orders(
        self, actor: ActorContext, supplier_id: UUID | None = None
    ) -> list[PurchaseOrderRecord]:
        return self._run(
            "approved_purchase_orders",
            actor,
            lambda u: u.views.approved_purchase_orders(supplier_id),
            entity_type=EntityType.PURCHASE_ORDER.value,
        )

    def get_order(self, actor: ActorContext, order_id: UUID) -> OrderRecord:
        return self._get(actor, EntityType.ORDER, order_id, lambda u: u.views.get_order(order_id))

    def get_purchase_order(self, actor: ActorContext, purchase_order_id: UUID) -> PurchaseOrderRecord:
        return self._get(
            actor,
            EntityType.PURCHASE_ORDER,
            purchase_order_id,
            lambda u: u.views.get_purchase_order(purchase_order_id),
        )

    def get_production_order(self, actor: ActorContext, production_id: UUID) -> ProductionOrderRecord:
        return self._get(
            actor,
            EntityType.PRODUCTION_ORDER,
            production_id,
            lambda u: u.views.get_production_order(production_id),
        )

    def _get(self, actor: ActorContext, entity_type: EntityType, entity_id: UUID, read):
        record = self._run(
            f"get_{entity_type.value}",
            actor,
            read,
            entity_type=entity_type.value,
            entity_id=entity_id,
        )
        if record is None:
            raise NotFoundError(entity_type.value, str(entity_id))
        return record
