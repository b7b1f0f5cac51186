"""
registrar_kernel.services.lifecycle_engine -- Guarded status transitions.

Responsibility:
    The only writer of ``status``, ``actor_history`` and ``updated_at``.
    Validates each requested move against the record type's transition
    table, applies it with an optimistic compare-and-set on ``version``,
    and runs the post-commit observers.

Architecture position:
    Kernel > Services.  May import from domain/, models/, services/.

Invariants enforced:
    - Only edges in the transition table are ever written; terminal
      records never change status.
    - Each committed transition appends exactly one history entry whose
      ``to_status`` is the new status and whose ``at`` is the new
      ``updated_at``.
    - Of two callers that read the same version, at most one commits; the
      other receives ConcurrentModificationError carrying the refreshed
      record.  Nothing is retried automatically.
    - Observers run after commit, in registration order; their failures
      never undo the transition.

Failure modes:
    - RecordNotFoundError, IllegalTransitionError, MissingActorError,
      ConcurrentModificationError.
    - StoreUnavailableError / StoreTimeoutError from the session scope.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from registrar_kernel.domain.clock import Clock
from registrar_kernel.domain.records import Record, RecordFilter, TransitionResult
from registrar_kernel.exceptions import (
    ConcurrentModificationError,
    IllegalTransitionError,
    MissingActorError,
    RecordNotFoundError,
)
from registrar_kernel.logging_config import LogContext, get_logger
from registrar_kernel.models.record import RecordHistoryModel, RecordModel
from registrar_kernel.services.base import BaseService
from registrar_kernel.services.observers import ObserverRegistry
from registrar_kernel.services.record_store import (
    RecordQuery,
    RecordStore,
    coerce_record_id,
)

logger = get_logger("services.lifecycle_engine")


class _VersionConflict(Exception):
    """Internal signal: the stored version moved between read and write."""

    def __init__(self, current: Record):
        self.current = current


class LifecycleEngine(BaseService):
    """Applies transitions to records held in a RecordStore."""

    def __init__(
        self,
        store: RecordStore,
        observers: ObserverRegistry | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(store.session_factory, clock or store.clock)
        self.store = store
        self.lifecycles = store.lifecycles
        self.observers = observers or ObserverRegistry(store.lifecycles)

    # ------------------------------------------------------------------
    # Submission and reads
    # ------------------------------------------------------------------

    def submit(
        self,
        record_type: str | Enum,
        payload: Mapping[str, Any],
        *,
        submitted_by: str,
        idempotency_key: str | None = None,
    ) -> Record:
        """Create a record in its type's start state on behalf of ``submitted_by``."""
        return self.store.create(
            record_type,
            payload,
            created_by=submitted_by,
            idempotency_key=idempotency_key,
        )

    def get(self, record_id: UUID | str) -> Record:
        return self.store.get(record_id)

    def query(
        self,
        record_type: str | Enum,
        criteria: RecordFilter | None = None,
    ) -> RecordQuery:
        return self.store.query(record_type, criteria)

    def allowed_transitions(self, record_id: UUID | str) -> frozenset[str]:
        """Statuses the record may move to next (empty when terminal)."""
        record = self.store.get(record_id)
        return self.lifecycles.get(record.record_type).allowed_targets(record.status)

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------

    def transition(
        self,
        record_id: UUID | str,
        to_status: str | Enum,
        actor: str,
        note: str | None = None,
        *,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Move a record to ``to_status`` and run its observers.

        Preconditions:
            ``actor`` is a non-empty identity.
        Postconditions:
            The transition is committed when this returns.  Observer
            failures are reported in ``TransitionResult.observer_errors``.

        Raises:
            MissingActorError: ``actor`` is empty; carries the record as read.
            RecordNotFoundError: no record has this id.
            IllegalTransitionError: the edge is not in the transition table.
            ConcurrentModificationError: ``expected_version`` is stale, or
                another caller committed first.
        """
        key = coerce_record_id(record_id)
        actor = (actor or "").strip()

        with LogContext.bind(record_id=key, actor_id=actor or None):
            # Read phase
            snapshot = self.store.get(key)
            if not actor:
                raise MissingActorError(key, current_record=snapshot)
            lifecycle = self.lifecycles.get(snapshot.record_type)
            try:
                target = lifecycle.check_transition(
                    key, snapshot.status, to_status, current_record=snapshot,
                )
            except IllegalTransitionError as exc:
                logger.info(
                    "transition_rejected",
                    extra={
                        "record_type": snapshot.record_type,
                        "from_status": snapshot.status,
                        "to_status": exc.to_status,
                    },
                )
                raise
            if expected_version is not None and expected_version != snapshot.version:
                self._log_conflict(snapshot, expected_version)
                raise ConcurrentModificationError(
                    snapshot.record_type, key, expected_version, snapshot,
                )

            now = self.clock.now()

            # Write phase: compare-and-set on the version just read
            try:
                record = self._apply(snapshot, target, actor, note, now)
            except _VersionConflict as conflict:
                self._log_conflict(conflict.current, snapshot.version)
                raise ConcurrentModificationError(
                    snapshot.record_type, key, snapshot.version, conflict.current,
                ) from None
            except (StaleDataError, IntegrityError):
                current = self.store.get(key)
                self._log_conflict(current, snapshot.version)
                raise ConcurrentModificationError(
                    snapshot.record_type, key, snapshot.version, current,
                ) from None

            logger.info(
                "record_transitioned",
                extra={
                    "record_type": record.record_type,
                    "from_status": snapshot.status,
                    "to_status": record.status,
                    "version": record.version,
                },
            )

        # Observers log under their own record context
        failures = self.observers.notify(record)
        if failures:
            logger.warning(
                "transition_partial_success",
                extra={
                    "record_id": str(key),
                    "to_status": record.status,
                    "failed_observers": [f.handler_name for f in failures],
                },
            )
        return TransitionResult(
            record=record,
            from_status=snapshot.status,
            to_status=record.status,
            observer_errors=failures,
        )

    def _apply(
        self,
        snapshot: Record,
        target: str,
        actor: str,
        note: str | None,
        now: datetime,
    ) -> Record:
        with self._session_scope("transition") as session:
            model = session.get(RecordModel, snapshot.id)
            if model is None:
                raise RecordNotFoundError(snapshot.id)
            if model.version != snapshot.version:
                raise _VersionConflict(model.to_dto())

            model.history.append(
                RecordHistoryModel(
                    id=uuid4(),
                    sequence=len(model.history) + 1,
                    actor=actor,
                    from_status=snapshot.status,
                    to_status=target,
                    at=now,
                    note=note,
                )
            )
            model.status = target
            model.updated_at = now
            session.flush()
            return model.to_dto()

    def _log_conflict(self, current: Record, expected_version: int) -> None:
        logger.warning(
            "transition_conflict",
            extra={
                "record_type": current.record_type,
                "expected_version": expected_version,
                "current_version": current.version,
                "current_status": current.status,
            },
        )
