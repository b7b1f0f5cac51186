"""
registrar_kernel.services.record_store -- Typed record persistence.

Responsibility:
    Create, read, query, update and delete lifecycle records.  The store
    owns ``payload``; it never writes ``status``, ``actor_history`` or
    ``updated_at`` after creation (the lifecycle engine does).

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, utils/.

Invariants enforced:
    - Records are created in their type's start state only.
    - Status literals are normalised.  On query they are checked against
      the type's closed state set; on create anything but the start state
      is an invalid initial state.
    - Lifecycle-owned keys never enter the payload.
    - Terminal records are read-only; deletion follows the type's delete
      policy.
    - Every payload write bumps ``version``; a lost race on the version
      compare raises ConcurrentModificationError, never a silent overwrite.
    - ``idempotency_key`` de-duplicates creation.

Failure modes:
    - RecordNotFoundError, InvalidInitialStateError, UnknownRecordTypeError,
      UnknownStatusError, ForbiddenOperationError,
      ConcurrentModificationError.
    - StoreUnavailableError / StoreTimeoutError from the session scope.
"""

from __future__ import annotations

import copy
import logging
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Union
from uuid import UUID, uuid4

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from registrar_kernel.domain.clock import Clock
from registrar_kernel.domain.lifecycle import LifecycleRegistry, normalize_status
from registrar_kernel.domain.records import Record, RecordFilter
from registrar_kernel.exceptions import (
    ConcurrentModificationError,
    ForbiddenOperationError,
    InvalidInitialStateError,
    RecordNotFoundError,
)
from registrar_kernel.logging_config import LogContext, get_logger
from registrar_kernel.models.record import RecordModel
from registrar_kernel.services.base import BaseService
from registrar_kernel.utils.payload import normalize_payload

logger = get_logger("services.record_store")

DEFAULT_PAGE_SIZE = 100

# Keys the lifecycle owns; a payload may never carry them.
RESERVED_PAYLOAD_KEYS = frozenset({
    "id",
    "type",
    "status",
    "version",
    "actorHistory",
    "actor_history",
    "createdAt",
    "created_at",
    "updatedAt",
    "updated_at",
})

PayloadChanges = Union[
    Mapping[str, Any],
    Callable[[dict[str, Any]], Mapping[str, Any]],
]


def coerce_record_id(record_id: UUID | str) -> UUID:
    """Parse a record id; anything unparseable cannot name a record."""
    if isinstance(record_id, UUID):
        return record_id
    try:
        return UUID(str(record_id))
    except ValueError:
        raise RecordNotFoundError(record_id) from None


def _type_key(record_type: str | Enum) -> str:
    return record_type.value if isinstance(record_type, Enum) else str(record_type)


def _log_record_event(
    event: str,
    record_id: UUID,
    record_type: str,
    *,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    # Overrides any outer binding, e.g. the record whose observers are running.
    with LogContext.bind(record_id=record_id, record_type=record_type):
        logger.log(level, event, extra=fields)


class RecordQuery:
    """Lazy, finite, restartable result of ``RecordStore.query``.

    Each iteration runs the query afresh, one short transaction per page,
    walking ``(created_at, id)`` in ascending order.  Pages are not
    isolated from each other: records written mid-iteration may or may
    not be seen.
    """

    def __init__(
        self,
        store: RecordStore,
        record_type: str,
        criteria: RecordFilter,
        status: str | None,
    ):
        self._store = store
        self.record_type = record_type
        self.criteria = criteria
        self._status = status

    def __iter__(self) -> Iterator[Record]:
        after: tuple[Any, UUID] | None = None
        while True:
            page = self._store._fetch_page(
                self.record_type, self._status, self.criteria, after,
            )
            for record in page:
                if self.criteria.matches_payload(record):
                    yield record
            if len(page) < self._store.page_size:
                return
            after = (page[-1].created_at, page[-1].id)

    def __repr__(self) -> str:
        return f"<RecordQuery {self.record_type} {self.criteria!r}>"


class RecordStore(BaseService):
    """Persistence for typed lifecycle records."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        lifecycles: LifecycleRegistry | None = None,
        clock: Clock | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        super().__init__(session_factory, clock)
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.lifecycles = lifecycles or LifecycleRegistry()
        self.page_size = page_size

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        record_type: str | Enum,
        payload: Mapping[str, Any],
        initial_status: str | Enum | None = None,
        *,
        created_by: str | None = None,
        idempotency_key: str | None = None,
    ) -> Record:
        """Create a record in its type's start state.

        When ``idempotency_key`` names an existing record, that record is
        returned unchanged and nothing is written.
        """
        lifecycle = self.lifecycles.get(record_type)
        if initial_status is not None:
            status = normalize_status(initial_status)
            if status != lifecycle.initial_state:
                raise InvalidInitialStateError(
                    lifecycle.record_type, status, lifecycle.initial_state,
                )
        data = normalize_payload(payload)
        self._check_reserved_keys(None, "create", data)

        if idempotency_key is not None:
            existing = self.get_by_idempotency_key(idempotency_key)
            if existing is not None:
                _log_record_event(
                    "record_create_deduplicated",
                    existing.id,
                    existing.record_type,
                    idempotency_key=idempotency_key,
                )
                return existing

        now = self.clock.now()
        try:
            with self._session_scope("create") as session:
                model = RecordModel(
                    id=uuid4(),
                    record_type=lifecycle.record_type,
                    status=lifecycle.initial_state,
                    payload=data,
                    created_at=now,
                    updated_at=now,
                    created_by=created_by,
                    idempotency_key=idempotency_key,
                )
                session.add(model)
                session.flush()
                record = model.to_dto()
        except IntegrityError:
            # Lost the race to another creator with the same key.
            if idempotency_key is None:
                raise
            existing = self.get_by_idempotency_key(idempotency_key)
            if existing is None:
                raise
            return existing

        _log_record_event(
            "record_created",
            record.id,
            record.record_type,
            status=record.status,
            created_by=created_by,
        )
        return record

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, record_id: UUID | str) -> Record:
        """Return the committed snapshot of a record.

        Raises:
            RecordNotFoundError: no record has this id.
        """
        key = coerce_record_id(record_id)
        with self._session_scope("get") as session:
            model = session.get(RecordModel, key)
            if model is None:
                raise RecordNotFoundError(record_id)
            return model.to_dto()

    def get_by_idempotency_key(self, idempotency_key: str) -> Record | None:
        with self._session_scope("get_by_idempotency_key") as session:
            model = session.execute(
                select(RecordModel).where(
                    RecordModel.idempotency_key == idempotency_key,
                )
            ).scalar_one_or_none()
            return model.to_dto() if model is not None else None

    def query(
        self,
        record_type: str | Enum,
        criteria: RecordFilter | None = None,
    ) -> RecordQuery:
        """Return a lazy iterable of the records of one type matching ``criteria``.

        Type and status are validated here, before any iteration.
        """
        lifecycle = self.lifecycles.get(record_type)
        criteria = criteria or RecordFilter()
        status = None
        if criteria.status is not None:
            status = lifecycle.coerce_status(criteria.status)
        return RecordQuery(self, lifecycle.record_type, criteria, status)

    def _fetch_page(
        self,
        record_type: str,
        status: str | None,
        criteria: RecordFilter,
        after: tuple[Any, UUID] | None,
    ) -> list[Record]:
        stmt = select(RecordModel).where(RecordModel.record_type == record_type)
        if status is not None:
            stmt = stmt.where(RecordModel.status == status)
        if criteria.date_range is not None:
            if criteria.date_range.start is not None:
                stmt = stmt.where(RecordModel.created_at >= criteria.date_range.start)
            if criteria.date_range.end is not None:
                stmt = stmt.where(RecordModel.created_at <= criteria.date_range.end)
        if after is not None:
            created_at, last_id = after
            stmt = stmt.where(
                or_(
                    RecordModel.created_at > created_at,
                    and_(
                        RecordModel.created_at == created_at,
                        RecordModel.id > last_id,
                    ),
                )
            )
        stmt = stmt.order_by(RecordModel.created_at, RecordModel.id).limit(self.page_size)

        with self._session_scope("query") as session:
            models = session.execute(stmt).scalars().all()
            return [m.to_dto() for m in models]

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    def update(
        self,
        record_id: UUID | str,
        changes: PayloadChanges,
        *,
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> Record:
        """Merge ``changes`` into the record's payload.

        ``changes`` is a partial mapping, or a callable that receives a copy
        of the current payload and returns one.  Status and history are not
        touched; ``updated_at`` keeps tracking the last transition.

        Raises:
            ForbiddenOperationError: the record is terminal, or the change
                touches a lifecycle-owned key.
            ConcurrentModificationError: ``expected_version`` is stale, or
                another writer won the version compare.
        """
        key = coerce_record_id(record_id)
        try:
            with self._session_scope("update") as session:
                model = session.get(RecordModel, key)
                if model is None:
                    raise RecordNotFoundError(record_id)
                current = model.to_dto()
                if expected_version is not None and current.version != expected_version:
                    raise ConcurrentModificationError(
                        current.record_type, key, expected_version, current,
                    )
                lifecycle = self.lifecycles.get(model.record_type)
                if lifecycle.is_terminal(model.status):
                    raise ForbiddenOperationError(
                        key, "update", f"record is in terminal status '{model.status}'",
                        current_record=current,
                    )

                delta = changes(copy.deepcopy(dict(current.payload))) if callable(changes) else changes
                delta = normalize_payload(delta)
                self._check_reserved_keys(key, "update", delta, current)

                model.payload = {**current.payload, **delta}
                session.flush()
                record = model.to_dto()
        except StaleDataError:
            refreshed = self.get(key)
            _log_record_event(
                "update_conflict",
                key,
                refreshed.record_type,
                level=logging.WARNING,
                current_version=refreshed.version,
            )
            raise ConcurrentModificationError(
                refreshed.record_type, key, expected_version, refreshed,
            ) from None

        _log_record_event(
            "record_updated",
            key,
            record.record_type,
            changed_keys=sorted(delta),
            version=record.version,
            updated_by=actor,
        )
        return record

    def delete(self, record_id: UUID | str, *, actor: str | None = None) -> None:
        """Delete a record and its history, subject to the type's delete policy.

        Raises:
            ForbiddenOperationError: the delete policy refuses the record's status.
        """
        key = coerce_record_id(record_id)
        with self._session_scope("delete") as session:
            model = session.get(RecordModel, key)
            if model is None:
                raise RecordNotFoundError(record_id)
            lifecycle = self.lifecycles.get(model.record_type)
            if not lifecycle.may_delete(model.status):
                raise ForbiddenOperationError(
                    key,
                    "delete",
                    f"{lifecycle.record_type} in status '{model.status}' "
                    f"cannot be deleted (policy: {lifecycle.delete_policy.value})",
                    current_record=model.to_dto(),
                )
            record_type, status = model.record_type, model.status
            session.delete(model)

        _log_record_event(
            "record_deleted",
            key,
            record_type,
            status=status,
            deleted_by=actor,
        )

    @staticmethod
    def _check_reserved_keys(
        record_id: UUID | None,
        operation: str,
        data: Mapping[str, Any],
        current: Record | None = None,
    ) -> None:
        touched = RESERVED_PAYLOAD_KEYS.intersection(data)
        if touched:
            raise ForbiddenOperationError(
                record_id,
                operation,
                f"payload may not set lifecycle fields {sorted(touched)}",
                current_record=current,
            )
