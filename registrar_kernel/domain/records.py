"""
Record DTOs (``registrar_kernel.domain.records``).

Responsibility
--------------
Frozen snapshots handed out by the record store and the lifecycle engine:
the record itself, its actor-history entries, query filters, and the
result of a transition (including observer failures).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants (checked by ``Record.check_invariants``)
---------------------------------------------------
* The last history entry's ``to_status`` equals ``status``.
* ``updated_at`` equals the last history ``at``, or ``created_at`` when
  there is no history.
* History entries chain: each ``from_status`` is the previous ``to_status``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID

from registrar_kernel.exceptions import PartialSuccessError, RecordInvariantError


@dataclass(frozen=True)
class HistoryEntry:
    """One committed status change. Immutable."""

    actor: str
    from_status: str
    to_status: str
    at: datetime
    note: str | None = None


@dataclass(frozen=True)
class Record:
    """Immutable snapshot of a stored record.

    ``version`` is the optimistic-concurrency token: it increases on every
    committed write (status or payload).
    """

    id: UUID
    record_type: str
    status: str
    payload: Mapping[str, Any]
    created_at: datetime
    updated_at: datetime
    version: int
    actor_history: tuple[HistoryEntry, ...] = ()
    created_by: str | None = None
    idempotency_key: str | None = None

    @property
    def last_transition(self) -> HistoryEntry | None:
        return self.actor_history[-1] if self.actor_history else None

    def check_invariants(self) -> None:
        """Raise RecordInvariantError if the snapshot breaks the history invariants."""
        last = self.last_transition
        if last is None:
            if self.updated_at != self.created_at:
                raise RecordInvariantError(self.id, "updated_at drifted without history")
            return
        if last.to_status != self.status:
            raise RecordInvariantError(self.id, "last history entry disagrees with status")
        if self.updated_at != last.at:
            raise RecordInvariantError(self.id, "updated_at is not the last transition time")
        for prev, cur in zip(self.actor_history, self.actor_history[1:]):
            if cur.from_status != prev.to_status:
                raise RecordInvariantError(self.id, "history chain is broken")


@dataclass(frozen=True)
class DateRange:
    """Inclusive ``created_at`` window; either end may be open."""

    start: datetime | None = None
    end: datetime | None = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("DateRange start must not be after end")


@dataclass(frozen=True)
class RecordFilter:
    """Query criteria for ``RecordStore.query``.

    ``actor`` matches ``payload[actor_field]`` when ``actor_field`` is
    given (e.g. ``submittedBy``), otherwise any actor in the history.
    ``payload_equals`` requires exact equality on top-level payload keys.
    """

    status: str | None = None
    actor: str | None = None
    actor_field: str | None = None
    date_range: DateRange | None = None
    payload_equals: Mapping[str, Any] = field(default_factory=dict)

    def matches_payload(self, record: Record) -> bool:
        for key, expected in self.payload_equals.items():
            if record.payload.get(key) != expected:
                return False
        if self.actor is None:
            return True
        if self.actor_field is not None:
            return record.payload.get(self.actor_field) == self.actor
        return any(entry.actor == self.actor for entry in record.actor_history)


@dataclass(frozen=True)
class ObserverFailure:
    """An observer that raised after a committed transition."""

    handler_name: str
    error: Exception

    @property
    def error_type(self) -> str:
        return type(self.error).__name__


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of ``LifecycleEngine.transition``.

    The transition itself is always committed when a result is returned;
    ``observer_errors`` lists the observers that failed afterwards.
    """

    record: Record
    from_status: str
    to_status: str
    observer_errors: tuple[ObserverFailure, ...] = ()

    @property
    def partial_success(self) -> bool:
        return bool(self.observer_errors)

    def raise_for_partial(self) -> Record:
        """Return the record, or raise PartialSuccessError if an observer failed."""
        if self.observer_errors:
            raise PartialSuccessError(self)
        return self.record
