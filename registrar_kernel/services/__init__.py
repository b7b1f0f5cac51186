"""Services for the registrar kernel (write side)."""

from registrar_kernel.services.budget_service import BudgetService
from registrar_kernel.services.derived_records import (
    DefermentNotifier,
    StudentGradePublisher,
    register_default_observers,
)
from registrar_kernel.services.lifecycle_engine import LifecycleEngine
from registrar_kernel.services.observers import ObserverRegistry, TransitionHandler
from registrar_kernel.services.record_store import RecordQuery, RecordStore

__all__ = [
    "BudgetService",
    "DefermentNotifier",
    "LifecycleEngine",
    "ObserverRegistry",
    "RecordQuery",
    "RecordStore",
    "StudentGradePublisher",
    "TransitionHandler",
    "register_default_observers",
]
