"""
HistoryLog -- append-only status history.

Responsibility:
    Writes one StatusHistory row per committed status change (and one
    creation row per entity), reads an entity's history in order, and
    replays it against the entity's workflow.

Architecture position:
    Kernel > Services.  Called by StatusTransitionEngine and
    DocumentService inside their transaction.

Invariants enforced:
    - Exactly one row per committed change: the row is flushed in the
      same transaction as the status UPDATE.
    - ``seq`` is dense per entity.  Callers hold the entity row lock, and
      the (entity_type, entity_id, seq) UNIQUE constraint is the backstop.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.actor import ActorContext
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.domain.replay import replay_status
from fulfillment_kernel.domain.workflow import EntityType
from fulfillment_kernel.domain.workflows import get_workflow
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.status_history import StatusHistory
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.history")


class HistoryLog(BaseService):
    """Append and read status history."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def append(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        old_status: str | None,
        new_status: str,
        actor: ActorContext,
        note: str | None = None,
    ) -> StatusHistory:
        """
        Record a status change.

        ``old_status`` is None only for the creation record.
        """
        next_seq = self.session.execute(
            select(func.coalesce(func.max(StatusHistory.seq) + 1, 0)).where(
                StatusHistory.entity_type == entity_type.value,
                StatusHistory.entity_id == entity_id,
            )
        ).scalar_one()

        row = StatusHistory(
            entity_type=entity_type.value,
            entity_id=entity_id,
            seq=next_seq,
            old_status=old_status,
            new_status=new_status,
            actor_id=actor.actor_id,
            actor_role=actor.role.value,
            occurred_at=self._clock.now(),
            note=note,
        )
        self.session.add(row)
        self.session.flush()

        logger.debug(
            "status_history_appended",
            extra={
                "entity_type": entity_type.value,
                "entity_id": str(entity_id),
                "seq": next_seq,
                "old_status": old_status,
                "new_status": new_status,
            },
        )
        return row

    def history(self, entity_type: EntityType, entity_id: UUID) -> list[StatusHistory]:
        """All rows for the entity, oldest first."""
        return list(
            self.session.execute(
                select(StatusHistory)
                .where(
                    StatusHistory.entity_type == entity_type.value,
                    StatusHistory.entity_id == entity_id,
                )
                .order_by(StatusHistory.occurred_at, StatusHistory.seq)
            ).scalars()
        )

    def latest(self, entity_type: EntityType, entity_id: UUID) -> StatusHistory | None:
        return self.session.execute(
            select(StatusHistory)
            .where(
                StatusHistory.entity_type == entity_type.value,
                StatusHistory.entity_id == entity_id,
            )
            .order_by(StatusHistory.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def replay(self, entity_type: EntityType, entity_id: UUID) -> str | None:
        """
        Fold the stored history into a status.

        Raises:
            InvalidTransitionError: if the stored history is not a walk of
                the declared graph.
        """
        return replay_status(
            get_workflow(entity_type),
            self.history(entity_type, entity_id),
            entity_id=str(entity_id),
        )
