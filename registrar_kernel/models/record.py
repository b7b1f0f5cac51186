"""
Module: registrar_kernel.models.record
Responsibility: ORM persistence for lifecycle records and their actor history.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ (DTO conversion) and exceptions only.

Invariants enforced:
    - Optimistic concurrency: ``version`` is the mapper's version_id_col, so
      every UPDATE is ``... WHERE id = :id AND version = :seen`` and a lost
      race surfaces as StaleDataError (translated by the services into
      ConcurrentModificationError).
    - Append-only history: history rows are never updated (ORM listener
      raises ImmutabilityViolationError); UNIQUE(record_id, sequence)
      prevents two writers appending the same step.
    - Idempotent derivation: ``idempotency_key`` is UNIQUE, so a derived
      record can only be created once per key.

Failure modes:
    - StaleDataError on a concurrent UPDATE of the same record.
    - IntegrityError on a duplicate idempotency_key or history sequence.
    - ImmutabilityViolationError on history UPDATE.
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from registrar_kernel.db.base import Base, UUIDString
from registrar_kernel.domain.records import HistoryEntry, Record
from registrar_kernel.exceptions import ImmutabilityViolationError


class RecordModel(Base):
    """Persistent lifecycle record.

    Contract:
        ``status``, ``updated_at`` and ``history`` are written only by the
        lifecycle engine; ``payload`` only by the record store.
        ``created_at`` never changes after INSERT.
    """

    __tablename__ = "lifecycle_records"

    __table_args__ = (
        Index("ix_lifecycle_records_type_status", "record_type", "status"),
        Index("ix_lifecycle_records_type_created", "record_type", "created_at"),
    )

    record_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(
        String(300), nullable=True, unique=True,
    )

    history: Mapped[list["RecordHistoryModel"]] = relationship(
        "RecordHistoryModel",
        back_populates="record",
        order_by="RecordHistoryModel.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Record {self.id} {self.record_type} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> Record:
        """Convert ORM model to frozen domain DTO."""
        return Record(
            id=self.id,
            record_type=self.record_type,
            status=self.status,
            payload=copy.deepcopy(self.payload or {}),
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
            actor_history=tuple(h.to_dto() for h in self.history),
            created_by=self.created_by,
            idempotency_key=self.idempotency_key,
        )


class RecordHistoryModel(Base):
    """One actor-history entry. Append-only."""

    __tablename__ = "lifecycle_history"

    __table_args__ = (
        UniqueConstraint("record_id", "sequence", name="uq_lifecycle_history_step"),
        Index("ix_lifecycle_history_actor", "actor"),
    )

    record_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("lifecycle_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    actor: Mapped[str] = mapped_column(String(200), nullable=False)
    from_status: Mapped[str] = mapped_column(String(50), nullable=False)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    at: Mapped[datetime] = mapped_column(nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    record: Mapped[RecordModel] = relationship("RecordModel", back_populates="history")

    def __repr__(self) -> str:
        return (
            f"<RecordHistory {self.record_id}#{self.sequence} "
            f"{self.from_status}->{self.to_status} by {self.actor}>"
        )

    def to_dto(self) -> HistoryEntry:
        return HistoryEntry(
            actor=self.actor,
            from_status=self.from_status,
            to_status=self.to_status,
            at=self.at,
            note=self.note,
        )


# =============================================================================
# ORM-Level Immutability for History (Append-Only)
# =============================================================================


@event.listens_for(RecordHistoryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent rewriting an actor-history entry."""
    raise ImmutabilityViolationError(
        entity_type="RecordHistory",
        entity_id=f"{target.record_id}#{target.sequence}",
        reason="Actor history is append-only -- cannot modify",
    )
