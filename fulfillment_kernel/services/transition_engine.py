"""
StatusTransitionEngine -- the only writer of workflow entity status.

Responsibility:
    Validates and applies a requested status change on an Order,
    PurchaseOrder, ProductionOrder or ReturnRequest: existence, declared
    edge, role permission, optimistic version; then runs the edge's side
    effects, updates the status and appends one history row.

Architecture position:
    Kernel > Services.  Consults the static tables in
    ``domain/workflows.py`` and ``domain/authorization.py`` and the
    registry in ``services/side_effects.py``; contains no per-edge
    conditionals of its own.

Invariants enforced:
    - Only declared edges are walked (InvalidTransitionError otherwise).
    - Exactly one history row per committed change, in the same flush as
      the status UPDATE; an idempotent repeat writes nothing.
    - The entity row is read ``FOR UPDATE`` so concurrent requests for the
      same entity serialize; ``version`` is a SQLAlchemy version counter.

Failure modes:
    NotFoundError, InvalidTransitionError, UnauthorizedError,
    ConflictError, plus whatever a side effect raises
    (InsufficientStockError).  All leave the entity unchanged once the
    caller's transaction rolls back.

Audit relevance:
    Every outcome is emitted as a ``workflow_transition`` log record.
"""

from __future__ import annotations

import time
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.actor import ActorContext
from fulfillment_kernel.domain.authorization import require_transition
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.domain.dtos import TransitionOutcome
from fulfillment_kernel.domain.workflow import EntityType
from fulfillment_kernel.domain.workflows import get_workflow
from fulfillment_kernel.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
)
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_kernel.models.order import Order
from fulfillment_kernel.models.production import ProductionOrder
from fulfillment_kernel.models.purchase_order import PurchaseOrder
from fulfillment_kernel.models.returns import ReturnRequest
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.history_service import HistoryLog
from fulfillment_kernel.services.ledger_service import InventoryLedger
from fulfillment_kernel.services.side_effects import (
    EffectContext,
    SideEffectRegistry,
    build_default_registry,
)

logger = get_logger("services.transition_engine")

OUTCOME_SUCCESS = "success"
OUTCOME_IDEMPOTENT = "idempotent_noop"
OUTCOME_NO_TRANSITION = "no_transition"
OUTCOME_UNAUTHORIZED = "unauthorized"
OUTCOME_CONFLICT = "conflict"

ENTITY_MODELS: dict[EntityType, type] = {
    EntityType.ORDER: Order,
    EntityType.PURCHASE_ORDER: PurchaseOrder,
    EntityType.PRODUCTION_ORDER: ProductionOrder,
    EntityType.RETURN_REQUEST: ReturnRequest,
}


def resolve_entity_type(entity_type: EntityType | str) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError:
        raise NotFoundError("workflow", str(entity_type)) from None


def coerce_uuid(entity_type: str, entity_id: UUID | str) -> UUID:
    if isinstance(entity_id, UUID):
        return entity_id
    try:
        return UUID(str(entity_id))
    except ValueError:
        raise NotFoundError(entity_type, str(entity_id)) from None


def _emit_workflow_trace(
    entity_type: EntityType,
    entity_id: UUID,
    from_state: str,
    to_state: str,
    outcome: str,
    duration_ms: float,
    actor: ActorContext,
    reason: str | None = None,
) -> None:
    record: dict[str, Any] = {
        "trace_type": "workflow_transition",
        "workflow": entity_type.value,
        "entity_type": entity_type.value,
        "entity_id": str(entity_id),
        "from_state": from_state,
        "to_state": to_state,
        "outcome": outcome,
        "actor_id": str(actor.actor_id),
        "actor_role": actor.role.value,
        "duration_ms": round(duration_ms, 3),
    }
    if reason is not None:
        record["reason"] = reason
    record.update(LogContext.get_all())
    logger.info("workflow_transition", extra=record)


class StatusTransitionEngine(BaseService):
    """
    Applies status transitions.

    Contract:
        ``transition`` either returns a TransitionOutcome or raises; on
        success the change, its history row and its side effects are
        flushed into the caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        ledger: InventoryLedger,
        history: HistoryLog | None = None,
        side_effects: SideEffectRegistry | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._ledger = ledger
        self._history = history or HistoryLog(session, clock)
        self._side_effects = side_effects or build_default_registry()

    def lock_entity(self, entity_type: EntityType, entity_id: UUID):
        """Load the entity ``FOR UPDATE``; NotFoundError if absent."""
        model = ENTITY_MODELS[entity_type]
        entity = self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entity is None:
            raise NotFoundError(entity_type.value, str(entity_id))
        return entity

    def transition(
        self,
        entity_type: EntityType | str,
        entity_id: UUID | str,
        requested_status: str,
        actor: ActorContext,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        """
        Move an entity to ``requested_status``.

        Requesting the status the entity already has is an idempotent
        no-op: no history row, no error, whatever ``expected_version`` is.
        """
        t0 = time.monotonic()
        entity_type = resolve_entity_type(entity_type)
        entity_id = coerce_uuid(entity_type.value, entity_id)
        workflow = get_workflow(entity_type)

        entity = self.lock_entity(entity_type, entity_id)
        current = entity.status

        def trace(outcome: str, reason: str | None = None) -> None:
            _emit_workflow_trace(
                entity_type,
                entity_id,
                current,
                requested_status,
                outcome,
                (time.monotonic() - t0) * 1000,
                actor,
                reason,
            )

        if requested_status == current:
            latest = self._history.latest(entity_type, entity_id)
            trace(OUTCOME_IDEMPOTENT)
            return TransitionOutcome(
                entity_type=entity_type.value,
                entity_id=entity_id,
                status=current,
                version=entity.version,
                history_id=latest.id if latest is not None else None,
                changed=False,
            )

        if workflow.find_transition(current, requested_status) is None:
            if requested_status not in workflow.states:
                reason = f"'{requested_status}' is not a {entity_type.value} status"
            elif workflow.is_terminal(current):
                reason = f"'{current}' is terminal"
            else:
                reason = "edge not declared"
            trace(OUTCOME_NO_TRANSITION, reason)
            raise InvalidTransitionError(
                entity_type.value, str(entity_id), current, requested_status, reason=reason
            )

        try:
            require_transition(actor, entity_type, current, requested_status, entity)
        except UnauthorizedError as exc:
            trace(OUTCOME_UNAUTHORIZED, str(exc))
            raise

        if expected_version is not None and expected_version != entity.version:
            trace(OUTCOME_CONFLICT, "stale expected_version")
            raise ConflictError(
                entity_type.value,
                str(entity_id),
                expected_version=expected_version,
                actual_version=entity.version,
            )

        self._side_effects.run(
            EffectContext(
                session=self.session,
                ledger=self._ledger,
                clock=self._clock,
                actor=actor,
                entity_type=entity_type,
                entity=entity,
                from_status=current,
                to_status=requested_status,
            )
        )

        entity.status = requested_status
        self.session.flush()
        row = self._history.append(
            entity_type, entity_id, current, requested_status, actor, note
        )

        trace(OUTCOME_SUCCESS)
        return TransitionOutcome(
            entity_type=entity_type.value,
            entity_id=entity_id,
            status=entity.status,
            version=entity.version,
            history_id=row.id,
            changed=True,
        )
