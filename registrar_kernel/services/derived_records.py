"""
registrar_kernel.services.derived_records -- Records created by transitions.

Responsibility:
    The built-in observers that derive new records when another record
    reaches a status:

    * ``StudentGradePublisher`` -- a published grade submission fans out
      into one read-only ``student_grade`` record per student line.
    * ``DefermentNotifier`` -- an approved, declined or reactivated
      deferment request leaves an unread notification for the student.

Architecture position:
    Kernel > Services.  Handlers write through the RecordStore only.

Invariants enforced:
    - Idempotent: every derived record carries an idempotency key built
      from the source record id, so re-running a handler for the same
      committed transition creates nothing new.
    - A malformed source payload raises before anything is created.
"""

from __future__ import annotations

from typing import Any, Mapping

from registrar_kernel.domain.academic import (
    AcademicPeriod,
    normalize_academic_year,
    normalize_semester,
)
from registrar_kernel.domain.lifecycle import (
    DefermentStatus,
    GradeSubmissionStatus,
    RecordType,
)
from registrar_kernel.domain.records import Record
from registrar_kernel.logging_config import get_logger
from registrar_kernel.services.observers import ObserverRegistry
from registrar_kernel.services.record_store import RecordStore
from registrar_kernel.utils.idempotency import generate_idempotency_key

logger = get_logger("services.derived_records")

# Copied from the submission line when present.
_GRADE_LINE_FIELDS = ("studentName", "indexNumber", "classScore", "examScore", "total", "grade")


def _actor_of(record: Record) -> str | None:
    last = record.last_transition
    return last.actor if last is not None else None


def _period_fields(payload: Mapping[str, Any], period: AcademicPeriod) -> dict[str, Any]:
    """Academic year/semester from the payload, else from the current period."""
    year = payload.get("academicYear")
    semester = payload.get("semester")
    return {
        "academicYear": normalize_academic_year(year) if year else period.academic_year,
        "semester": normalize_semester(semester) if semester else period.semester,
    }


class StudentGradePublisher:
    """Create one ``student_grade`` per line of a published grade submission."""

    name = "student_grade_publisher"

    def __init__(self, store: RecordStore, academic_period: AcademicPeriod):
        self._store = store
        self._period = academic_period

    def __call__(self, submission: Record) -> None:
        lines = submission.payload.get("grades") or []
        if not isinstance(lines, list):
            raise ValueError(
                f"Grade submission {submission.id} has a malformed 'grades' field"
            )
        for index, line in enumerate(lines):
            if not isinstance(line, Mapping) or not line.get("studentId"):
                raise ValueError(
                    f"Grade line {index} of submission {submission.id} has no studentId"
                )

        published_by = _actor_of(submission)
        published_at = submission.updated_at.isoformat()
        shared = {
            "submissionId": str(submission.id),
            "courseCode": submission.payload.get("courseCode"),
            "courseName": submission.payload.get("courseName"),
            "publishedBy": published_by,
            "publishedAt": published_at,
            **_period_fields(submission.payload, self._period),
        }

        created = 0
        for line in lines:
            student_id = str(line["studentId"])
            payload = {"studentId": student_id, **shared}
            for field in _GRADE_LINE_FIELDS:
                if field in line:
                    payload[field] = line[field]
            key = generate_idempotency_key("grade_publication", submission.id, student_id)
            existing = self._store.get_by_idempotency_key(key)
            if existing is not None:
                continue
            self._store.create(
                RecordType.STUDENT_GRADE,
                payload,
                created_by=published_by,
                idempotency_key=key,
            )
            created += 1

        logger.info(
            "student_grades_published",
            extra={
                "submission_id": str(submission.id),
                "lines": len(lines),
                "created_count": created,
            },
        )


_NOTICES: dict[str, tuple[str, str]] = {
    DefermentStatus.APPROVED.value: (
        "deferment_approved",
        "Deferment Request Approved",
    ),
    DefermentStatus.DECLINED.value: (
        "deferment_declined",
        "Deferment Request Declined",
    ),
    DefermentStatus.REACTIVATED.value: (
        "student_reactivation",
        "Student Reactivation",
    ),
}


def _notice_message(status: str, payload: Mapping[str, Any]) -> str:
    period = payload.get("period") or "the requested period"
    if status == DefermentStatus.APPROVED.value:
        return (
            f"Your deferment request for {period} has been approved. "
            "Academic activities are paused and you will resume in a future semester."
        )
    if status == DefermentStatus.DECLINED.value:
        return f"Your deferment request for {period} has been declined."
    return_period = " of ".join(
        str(p) for p in (payload.get("returnSemester"), payload.get("returnAcademicYear")) if p
    )
    return (
        "Your deferment has been lifted. You are now reactivated"
        + (f" and can register for {return_period}." if return_period else ".")
    )


class DefermentNotifier:
    """Leave an unread notification when a deferment request is decided."""

    name = "deferment_notifier"

    def __init__(self, store: RecordStore):
        self._store = store

    def __call__(self, request: Record) -> None:
        notice = _NOTICES.get(request.status)
        if notice is None:
            return
        student_id = request.payload.get("studentId")
        if not student_id:
            raise ValueError(f"Deferment request {request.id} has no studentId")

        notice_type, title = notice
        key = generate_idempotency_key("deferment_notice", request.id, request.status)
        record = self._store.create(
            RecordType.NOTIFICATION,
            {
                "studentId": str(student_id),
                "noticeType": notice_type,
                "title": title,
                "message": _notice_message(request.status, request.payload),
                "relatedRecordId": str(request.id),
                "sentBy": _actor_of(request),
            },
            created_by=_actor_of(request),
            idempotency_key=key,
        )
        logger.info(
            "deferment_notice_sent",
            extra={
                "request_id": str(request.id),
                "notification_id": str(record.id),
                "notice_type": notice_type,
            },
        )


def register_default_observers(
    registry: ObserverRegistry,
    store: RecordStore,
    academic_period: AcademicPeriod,
) -> ObserverRegistry:
    """Attach the built-in derived-record handlers to ``registry``."""
    registry.register(
        RecordType.GRADE_SUBMISSION,
        GradeSubmissionStatus.PUBLISHED,
        StudentGradePublisher(store, academic_period),
    )
    notifier = DefermentNotifier(store)
    for status in (
        DefermentStatus.APPROVED,
        DefermentStatus.DECLINED,
        DefermentStatus.REACTIVATED,
    ):
        registry.register(RecordType.DEFERMENT_REQUEST, status, notifier)
    return registry
