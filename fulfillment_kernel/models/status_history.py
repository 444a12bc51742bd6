"""
Module: fulfillment_kernel.models.status_history
Responsibility: Append-only status history of every workflow entity.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per committed status change, plus one creation row
      (old_status NULL) per entity.
    - (entity_type, entity_id, seq) is unique; seq is dense from 0.
    - Rows are never updated or deleted (db/immutability.py).

Audit relevance:
    Folding an entity's rows in seq order reproduces its current status
    (fulfillment_kernel.domain.replay).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base, UUIDString


class StatusHistory(Base):
    """One status change of one workflow entity."""

    __tablename__ = "status_history"

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "seq", name="uq_status_history_seq"),
        Index("idx_status_history_entity", "entity_type", "entity_id"),
    )

    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(32), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StatusHistory {self.entity_type}:{self.entity_id} "
            f"#{self.seq} {self.old_status}->{self.new_status}>"
        )
