"""ORM models for the registrar kernel."""

from registrar_kernel.models.record import RecordHistoryModel, RecordModel

__all__ = [
    "RecordHistoryModel",
    "RecordModel",
]
