"""
Typed Exception Hierarchy for the Registrar Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The admin front-ends (results approval, fee portal, budgets, deferments)
need to react differently to "this record moved under you" and "that move
is not allowed at all".  Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)
  4. Errors raised after a record was read carry ``current_record`` -- the
     refreshed snapshot -- so the caller can pick the next legal move
     without a second round trip.

Example:
    try:
        engine.transition(record_id, "published", actor="examofficer1")
    except ConcurrentModificationError as e:
        # Re-decide against the refreshed state; never blindly retry.
        show_status(e.current_record.status)
    except IllegalTransitionError as e:
        api_response(code=e.code, status=e.from_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RegistrarKernelError (base)
    |
    +-- RecordError
    |   +-- RecordNotFoundError
    |   +-- InvalidInitialStateError
    |   +-- UnknownRecordTypeError
    |   +-- UnknownStatusError
    |   +-- RecordInvariantError
    |
    +-- LifecycleError
    |   +-- IllegalTransitionError
    |   +-- MissingActorError
    |   +-- InvalidLifecycleDefinitionError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- AccessError
    |   +-- ForbiddenOperationError
    |
    +-- ObserverError
    |   +-- PartialSuccessError
    |
    +-- StoreError
    |   +-- StoreUnavailableError
    |       +-- StoreTimeoutError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|-------------------------------------------
Record       | NOT_FOUND                | Record id doesn't exist
             | INVALID_INITIAL_STATE    | create() with a non-start status
             | UNKNOWN_RECORD_TYPE      | Type has no registered lifecycle
             | UNKNOWN_STATUS           | Status literal not in the type's state set
             | INCONSISTENT_RECORD      | Snapshot history disagrees with status
-------------|--------------------------|-------------------------------------------
Lifecycle    | ILLEGAL_TRANSITION       | (type, from, to) not in transition table
             | MISSING_ACTOR            | transition() without an actor
             | INVALID_LIFECYCLE        | Bad transition table at registration
-------------|--------------------------|-------------------------------------------
Concurrency  | CONCURRENT_MODIFICATION  | Version changed between read and write
-------------|--------------------------|-------------------------------------------
Access       | FORBIDDEN                | Update/delete not allowed in this status
-------------|--------------------------|-------------------------------------------
Observer     | PARTIAL_SUCCESS          | Transition committed, an observer failed
-------------|--------------------------|-------------------------------------------
Store        | UNAVAILABLE              | Database unreachable / locked
             | TIMEOUT                  | Connection pool or statement timeout
-------------|--------------------------|-------------------------------------------
Immutability | IMMUTABILITY_VIOLATION   | Rewriting an actor-history entry

===============================================================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from registrar_kernel.domain.records import Record, TransitionResult


class RegistrarKernelError(Exception):
    """
    Base exception for all registrar kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "REGISTRAR_KERNEL_ERROR"


# Record-related exceptions


class RecordError(RegistrarKernelError):
    """Base exception for record-related errors."""

    code: str = "RECORD_ERROR"


class RecordNotFoundError(RecordError):
    """Record with given ID was not found."""

    code: str = "NOT_FOUND"

    def __init__(self, record_id: Any):
        self.record_id = str(record_id)
        super().__init__(f"Record not found: {record_id}")


class InvalidInitialStateError(RecordError):
    """A record was created in a status other than its type's start state."""

    code: str = "INVALID_INITIAL_STATE"

    def __init__(self, record_type: str, status: str, expected: str):
        self.record_type = record_type
        self.status = status
        self.expected = expected
        super().__init__(
            f"Invalid initial status '{status}' for {record_type}: "
            f"records must start in '{expected}'"
        )


class UnknownRecordTypeError(RecordError):
    """No lifecycle is registered for the record type."""

    code: str = "UNKNOWN_RECORD_TYPE"

    def __init__(self, record_type: str):
        self.record_type = record_type
        super().__init__(f"Unknown record type: {record_type}")


class UnknownStatusError(RecordError):
    """Status literal is not a member of the type's state set."""

    code: str = "UNKNOWN_STATUS"

    def __init__(self, record_type: str, status: str):
        self.record_type = record_type
        self.status = status
        super().__init__(f"Unknown status '{status}' for record type {record_type}")


class RecordInvariantError(RecordError):
    """A record snapshot's status, history and timestamps disagree."""

    code: str = "INCONSISTENT_RECORD"

    def __init__(self, record_id: Any, reason: str):
        self.record_id = str(record_id)
        self.reason = reason
        super().__init__(f"Record {record_id} is inconsistent: {reason}")


# Lifecycle-related exceptions


class LifecycleError(RegistrarKernelError):
    """Base exception for lifecycle/transition errors."""

    code: str = "LIFECYCLE_ERROR"


class IllegalTransitionError(LifecycleError):
    """The requested status change is not in the transition table."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        record_type: str,
        record_id: Any,
        from_status: str,
        to_status: str,
        current_record: Record | None = None,
    ):
        self.record_type = record_type
        self.record_id = str(record_id)
        self.from_status = from_status
        self.to_status = to_status
        self.current_record = current_record
        super().__init__(
            f"Illegal transition for {record_type} {record_id}: "
            f"{from_status} -> {to_status}"
        )


class MissingActorError(LifecycleError):
    """A transition was requested without an actor identity."""

    code: str = "MISSING_ACTOR"

    def __init__(self, record_id: Any, current_record: Record | None = None):
        self.record_id = str(record_id)
        self.current_record = current_record
        super().__init__(f"Transition on record {record_id} requires an actor")


class InvalidLifecycleDefinitionError(LifecycleError):
    """A lifecycle definition is internally inconsistent."""

    code: str = "INVALID_LIFECYCLE"

    def __init__(self, record_type: str, reason: str):
        self.record_type = record_type
        self.reason = reason
        super().__init__(f"Invalid lifecycle for {record_type}: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(RegistrarKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """
    Optimistic concurrency conflict detected.

    The record's version changed between the caller's read and the write.
    Nothing was written.  The caller must re-read (``current_record`` is
    the refreshed snapshot) and re-decide, since the legal moves may now
    differ.
    """

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        record_type: str,
        record_id: Any,
        expected_version: int | None,
        current_record: Record | None = None,
    ):
        self.record_type = record_type
        self.record_id = str(record_id)
        self.expected_version = expected_version
        self.current_record = current_record
        super().__init__(
            f"Concurrent modification on {record_type} {record_id}: "
            f"expected version {expected_version}, record was modified by another caller"
        )


# Access-related exceptions


class AccessError(RegistrarKernelError):
    """Base exception for operations refused by record state."""

    code: str = "ACCESS_ERROR"


class ForbiddenOperationError(AccessError):
    """Update/delete refused because of the record's status or the fields touched."""

    code: str = "FORBIDDEN"

    def __init__(
        self,
        record_id: Any,
        operation: str,
        reason: str,
        current_record: Record | None = None,
    ):
        self.record_id = str(record_id) if record_id is not None else None
        self.operation = operation
        self.reason = reason
        self.current_record = current_record
        super().__init__(f"Forbidden {operation} on record {record_id}: {reason}")


# Observer-related exceptions


class ObserverError(RegistrarKernelError):
    """Base exception for observer hook errors."""

    code: str = "OBSERVER_ERROR"


class PartialSuccessError(ObserverError):
    """
    The transition was committed but at least one observer failed.

    The committed transition is NOT rolled back.  ``result`` carries the
    committed record and every observer failure so the caller can decide
    whether to compensate (e.g. re-run the handler).
    """

    code: str = "PARTIAL_SUCCESS"

    def __init__(self, result: TransitionResult):
        self.result = result
        self.current_record = result.record
        self.failed_handlers = tuple(f.handler_name for f in result.observer_errors)
        super().__init__(
            f"Transition of record {result.record.id} to {result.to_status} committed, "
            f"but observers failed: {', '.join(self.failed_handlers)}"
        )


# Store-related exceptions


class StoreError(RegistrarKernelError):
    """Base exception for record store infrastructure failures."""

    code: str = "STORE_ERROR"


class StoreUnavailableError(StoreError):
    """The underlying database could not be reached or is locked."""

    code: str = "UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Record store unavailable during {operation}: {reason}")


class StoreTimeoutError(StoreUnavailableError):
    """The underlying database did not answer in time."""

    code: str = "TIMEOUT"


# Immutability-related exceptions


class ImmutabilityError(RegistrarKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to rewrite an append-only actor-history entry."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
