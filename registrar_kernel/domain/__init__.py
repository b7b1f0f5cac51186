"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from registrar_kernel.domain.academic import AcademicPeriod
from registrar_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from registrar_kernel.domain.lifecycle import (
    DEFAULT_LIFECYCLES,
    AdmissionStatus,
    BudgetStatus,
    DefermentStatus,
    DeletePolicy,
    GradeSubmissionStatus,
    LifecycleDefinition,
    LifecycleRegistry,
    NotificationStatus,
    PaymentStatus,
    RecordType,
    StudentGradeStatus,
    normalize_status,
)
from registrar_kernel.domain.records import (
    DateRange,
    HistoryEntry,
    ObserverFailure,
    Record,
    RecordFilter,
    TransitionResult,
)

__all__ = [
    "AcademicPeriod",
    "AdmissionStatus",
    "BudgetStatus",
    "Clock",
    "DEFAULT_LIFECYCLES",
    "DateRange",
    "DefermentStatus",
    "DeletePolicy",
    "DeterministicClock",
    "GradeSubmissionStatus",
    "HistoryEntry",
    "LifecycleDefinition",
    "LifecycleRegistry",
    "NotificationStatus",
    "ObserverFailure",
    "PaymentStatus",
    "Record",
    "RecordFilter",
    "RecordType",
    "StudentGradeStatus",
    "SystemClock",
    "TransitionResult",
    "normalize_status",
]
