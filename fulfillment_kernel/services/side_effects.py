"""
Declared side effects of workflow edges.

Responsibility:
    A registry keyed by (entity_type, from_status, to_status) of the
    actions that must happen in the same transaction as a status change.
    ``from_status`` may be ``ANY_STATE`` to match every source state.

Architecture position:
    Kernel > Services.  Consulted by StatusTransitionEngine only.  The
    effects themselves call InventoryLedger; they never commit.

Failure modes:
    An effect raising (InsufficientStockError, InvalidTransitionError)
    aborts the transition; the coordinator's transaction rolls back the
    status change with it.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.actor import ActorContext
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.domain.workflow import EntityType
from fulfillment_kernel.exceptions import InsufficientStockError, InvalidTransitionError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.inventory import InventoryRecord, MovementType
from fulfillment_kernel.models.order import Order
from fulfillment_kernel.models.production import ProductionOrder
from fulfillment_kernel.models.shipment import Shipment
from fulfillment_kernel.services.ledger_service import InventoryLedger

logger = get_logger("services.side_effects")

ANY_STATE = "*"


@dataclass(frozen=True)
class EffectContext:
    """Everything an effect may touch, scoped to one transition."""

    session: Session
    ledger: InventoryLedger
    clock: Clock
    actor: ActorContext
    entity_type: EntityType
    entity: Any
    from_status: str
    to_status: str


SideEffect = Callable[[EffectContext], None]


class SideEffectRegistry:
    """Maps workflow edges to the effects they trigger."""

    def __init__(self) -> None:
        self._effects: dict[tuple[EntityType, str, str], list[SideEffect]] = defaultdict(list)

    def register(
        self,
        entity_type: EntityType,
        from_status: str,
        to_status: str,
        effect: SideEffect,
    ) -> None:
        self._effects[(entity_type, from_status, to_status)].append(effect)

    def effects_for(
        self, entity_type: EntityType, from_status: str, to_status: str
    ) -> list[SideEffect]:
        """Exact-edge effects first, then wildcard-source effects."""
        return list(self._effects.get((entity_type, from_status, to_status), ())) + list(
            self._effects.get((entity_type, ANY_STATE, to_status), ())
        )

    def run(self, ctx: EffectContext) -> list[str]:
        """Run every effect of the edge in ``ctx``; returns their names."""
        ran = []
        for effect in self.effects_for(ctx.entity_type, ctx.from_status, ctx.to_status):
            effect(ctx)
            ran.append(effect.__name__)
        if ran:
            logger.debug(
                "side_effects_applied",
                extra={
                    "entity_type": ctx.entity_type.value,
                    "entity_id": str(ctx.entity.id),
                    "effects": ran,
                },
            )
        return ran


# -----------------------------------------------------------------------------
# Production order
# -----------------------------------------------------------------------------


def stamp_production_started(ctx: EffectContext) -> None:
    production: ProductionOrder = ctx.entity
    production.started_at = ctx.clock.now()


def credit_completed_production(ctx: EffectContext) -> None:
    """Finished goods go into the production order's warehouse."""
    production: ProductionOrder = ctx.entity
    ctx.ledger.credit(
        production.product_id,
        production.warehouse_id,
        production.quantity,
        reference=str(production.id),
        actor_id=ctx.actor.actor_id,
        movement_type=MovementType.PRODUCTION_CREDIT,
    )
    production.completed_at = ctx.clock.now()


def release_detail_key(ctx: EffectContext) -> None:
    """A cancelled production order no longer occupies its PO line."""
    production: ProductionOrder = ctx.entity
    production.live_detail_key = None


# -----------------------------------------------------------------------------
# Customer order
# -----------------------------------------------------------------------------


def _required_by_product(order: Order) -> dict:
    required: dict = defaultdict(int)
    for line in order.lines:
        required[line.product_id] += line.quantity
    return required


def check_order_availability(ctx: EffectContext) -> None:
    """Every line must be coverable from the stock held across all warehouses."""
    order: Order = ctx.entity
    for product_id, quantity in sorted(_required_by_product(order).items(), key=lambda kv: str(kv[0])):
        available = ctx.session.execute(
            select(func.coalesce(func.sum(InventoryRecord.quantity), 0)).where(
                InventoryRecord.product_id == product_id
            )
        ).scalar_one()
        if quantity > available:
            raise InsufficientStockError(product_id, None, quantity, int(available))


def debit_shipped_order(ctx: EffectContext) -> None:
    """Lines leave the warehouse named on the order's shipment."""
    order: Order = ctx.entity
    shipment = ctx.session.execute(
        select(Shipment)
        .where(Shipment.order_id == order.id)
        .order_by(Shipment.shipped_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if shipment is None:
        raise InvalidTransitionError(
            ctx.entity_type.value,
            str(order.id),
            ctx.from_status,
            ctx.to_status,
            reason="no shipment recorded for the order",
        )
    # Fixed lock order across cells.
    for product_id, quantity in sorted(_required_by_product(order).items(), key=lambda kv: str(kv[0])):
        ctx.ledger.debit(
            product_id,
            shipment.warehouse_id,
            quantity,
            reference=str(order.id),
            actor_id=ctx.actor.actor_id,
            movement_type=MovementType.FULFILLMENT_DEBIT,
        )


def build_default_registry() -> SideEffectRegistry:
    registry = SideEffectRegistry()
    registry.register(EntityType.PRODUCTION_ORDER, "pending", "in_progress", stamp_production_started)
    registry.register(EntityType.PRODUCTION_ORDER, ANY_STATE, "completed", credit_completed_production)
    registry.register(EntityType.PRODUCTION_ORDER, ANY_STATE, "cancelled", release_detail_key)
    registry.register(EntityType.ORDER, "pending", "confirmed", check_order_availability)
    registry.register(EntityType.ORDER, "confirmed", "shipped", debit_shipped_order)
    return registry
