"""
Record lifecycle types (``registrar_kernel.domain.lifecycle``).

Responsibility
--------------
Pure value objects for the per-type record state machines: the closed
status enumeration of every record type, its start state, its transition
table, and its delete policy.  ``LifecycleRegistry`` is the lookup the
record store and the lifecycle engine share.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* ``initial_state`` is a member of ``states``.
* Every transition edge references states in ``states``.
* Terminal states are exactly the states with no outgoing edges.
* Status literals are normalised (``"Pending Approval"`` ->
  ``pending_approval``) and then validated against the closed set;
  unknown literals are rejected, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Mapping

from registrar_kernel.exceptions import (
    IllegalTransitionError,
    InvalidLifecycleDefinitionError,
    UnknownRecordTypeError,
    UnknownStatusError,
)

if TYPE_CHECKING:
    from registrar_kernel.domain.records import Record


# =========================================================================
# Record types and their status enumerations
# =========================================================================


class RecordType(str, Enum):
    """Record types known to the kernel out of the box."""

    GRADE_SUBMISSION = "grade_submission"
    STUDENT_GRADE = "student_grade"
    PAYMENT = "payment"
    DEFERMENT_REQUEST = "deferment_request"
    BUDGET = "budget"
    NOTIFICATION = "notification"
    ADMISSION_APPLICATION = "admission_application"


class GradeSubmissionStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"


class StudentGradeStatus(str, Enum):
    PUBLISHED = "published"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class DefermentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    REACTIVATED = "reactivated"


class BudgetStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


class NotificationStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"


class AdmissionStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DeletePolicy(str, Enum):
    """When a record may be physically deleted."""

    NON_TERMINAL = "non_terminal"
    ALWAYS = "always"
    NEVER = "never"


def normalize_status(value: str | Enum) -> str:
    """Fold the spellings seen in the wild onto the canonical literal.

    ``"Pending"``, ``" pending "`` and ``"PENDING"`` all become ``pending``;
    ``"Pending Approval"`` and ``"pending-approval"`` become
    ``pending_approval``.  Membership is checked by the caller.
    """
    raw = value.value if isinstance(value, Enum) else str(value)
    return "_".join(raw.strip().lower().replace("-", " ").split())


# =========================================================================
# Lifecycle definition
# =========================================================================


@dataclass(frozen=True)
class LifecycleDefinition:
    """The state machine of one record type.

    Contract: frozen; ``transitions`` maps each state to the set of states
    reachable in one step.  States missing from ``transitions`` have no
    outgoing edges.
    Guarantees: validated at construction (see module invariants).
    """

    record_type: str
    initial_state: str
    states: tuple[str, ...]
    transitions: Mapping[str, frozenset[str]] = field(default_factory=dict)
    delete_policy: DeletePolicy = DeletePolicy.NON_TERMINAL
    description: str = ""

    def __post_init__(self) -> None:
        if not self.states:
            raise InvalidLifecycleDefinitionError(self.record_type, "no states declared")
        if len(set(self.states)) != len(self.states):
            raise InvalidLifecycleDefinitionError(self.record_type, "duplicate states")
        if self.initial_state not in self.states:
            raise InvalidLifecycleDefinitionError(
                self.record_type,
                f"initial state '{self.initial_state}' is not a declared state",
            )
        for from_state, targets in self.transitions.items():
            if from_state not in self.states:
                raise InvalidLifecycleDefinitionError(
                    self.record_type, f"transition from unknown state '{from_state}'",
                )
            unknown = set(targets) - set(self.states)
            if unknown:
                raise InvalidLifecycleDefinitionError(
                    self.record_type,
                    f"transition {from_state} -> {sorted(unknown)} targets unknown states",
                )

    def allowed_targets(self, status: str) -> frozenset[str]:
        return frozenset(self.transitions.get(status, frozenset()))

    def is_terminal(self, status: str) -> bool:
        return not self.allowed_targets(status)

    @property
    def terminal_states(self) -> frozenset[str]:
        return frozenset(s for s in self.states if self.is_terminal(s))

    def can_transition(self, from_status: str, to_status: str) -> bool:
        return to_status in self.allowed_targets(from_status)

    def coerce_status(self, value: str | Enum) -> str:
        """Normalise ``value`` and check it is one of this type's states.

        Raises:
            UnknownStatusError: the literal is not in the closed set.
        """
        status = normalize_status(value)
        if status not in self.states:
            raise UnknownStatusError(self.record_type, str(value))
        return status

    def check_transition(
        self,
        record_id: object,
        from_status: str,
        to_status: str | Enum,
        current_record: Record | None = None,
    ) -> str:
        """Return the canonical target status or raise IllegalTransitionError.

        Unknown target literals are illegal transitions too: no edge in the
        table leads to them.  ``current_record`` rides along on the error.
        """
        target = normalize_status(to_status)
        if not self.can_transition(from_status, target):
            raise IllegalTransitionError(
                self.record_type, record_id, from_status, target,
                current_record=current_record,
            )
        return target

    def may_delete(self, status: str) -> bool:
        if self.delete_policy == DeletePolicy.ALWAYS:
            return True
        if self.delete_policy == DeletePolicy.NEVER:
            return False
        return not self.is_terminal(status)


def _edges(table: Mapping[Enum, Iterable[Enum]]) -> dict[str, frozenset[str]]:
    return {src.value: frozenset(t.value for t in targets) for src, targets in table.items()}


# =========================================================================
# Built-in transition tables
# =========================================================================


GRADE_SUBMISSION_LIFECYCLE = LifecycleDefinition(
    record_type=RecordType.GRADE_SUBMISSION.value,
    initial_state=GradeSubmissionStatus.PENDING_APPROVAL.value,
    states=tuple(s.value for s in GradeSubmissionStatus),
    transitions=_edges({
        GradeSubmissionStatus.PENDING_APPROVAL: (
            GradeSubmissionStatus.APPROVED,
            GradeSubmissionStatus.REJECTED,
        ),
        GradeSubmissionStatus.APPROVED: (GradeSubmissionStatus.PUBLISHED,),
    }),
    description="Lecturer grade sheet: exam officer approves, director publishes.",
)

STUDENT_GRADE_LIFECYCLE = LifecycleDefinition(
    record_type=RecordType.STUDENT_GRADE.value,
    initial_state=StudentGradeStatus.PUBLISHED.value,
    states=tuple(s.value for s in StudentGradeStatus),
    delete_policy=DeletePolicy.NEVER,
    description="Per-student grade row derived from a published submission.",
)

PAYMENT_LIFECYCLE = LifecycleDefinition(
    record_type=RecordType.PAYMENT.value,
    initial_state=PaymentStatus.PENDING.value,
    states=tuple(s.value for s in PaymentStatus),
    transitions=_edges({
        PaymentStatus.PENDING: (
            PaymentStatus.PROCESSING,
            PaymentStatus.SUCCESS,
            PaymentStatus.FAILED,
        ),
        PaymentStatus.PROCESSING: (PaymentStatus.SUCCESS, PaymentStatus.FAILED),
    }),
    description="Fee payment attempt.",
)

DEFERMENT_LIFECYCLE = LifecycleDefinition(
    record_type=RecordType.DEFERMENT_REQUEST.value,
    initial_state=DefermentStatus.PENDING.value,
    states=tuple(s.value for s in DefermentStatus),
    transitions=_edges({
        DefermentStatus.PENDING: (DefermentStatus.APPROVED, DefermentStatus.DECLINED),
        DefermentStatus.APPROVED: (DefermentStatus.REACTIVATED,),
    }),
    description="Student request to defer a programme, later reactivated.",
)

BUDGET_LIFECYCLE = LifecycleDefinition(
    record_type=RecordType.BUDGET.value,
    initial_state=BudgetStatus.PENDING.value,
    states=tuple(s.value for s in BudgetStatus),
    transitions=_edges({
        BudgetStatus.PENDING: (BudgetStatus.ACTIVE, BudgetStatus.CLOSED),
        BudgetStatus.ACTIVE: (BudgetStatus.EXHAUSTED, BudgetStatus.CLOSED),
        BudgetStatus.EXHAUSTED: (BudgetStatus.ACTIVE, BudgetStatus.CLOSED),
    }),
    # Budgets were always deletable in the finance office, whatever their status.
    delete_policy=DeletePolicy.ALWAYS,
    description="Departmental budget allocation.",
)

NOTIFICATION_LIFECYCLE = LifecycleDefinition(
    record_type=RecordType.NOTIFICATION.value,
    initial_state=NotificationStatus.UNREAD.value,
    states=tuple(s.value for s in NotificationStatus),
    transitions=_edges({NotificationStatus.UNREAD: (NotificationStatus.READ,)}),
    delete_policy=DeletePolicy.ALWAYS,
    description="Message shown to a student on the portal.",
)

ADMISSION_LIFECYCLE = LifecycleDefinition(
    record_type=RecordType.ADMISSION_APPLICATION.value,
    initial_state=AdmissionStatus.DRAFT.value,
    states=tuple(s.value for s in AdmissionStatus),
    transitions=_edges({
        AdmissionStatus.DRAFT: (AdmissionStatus.SUBMITTED,),
        # The director may decide straight from the submitted queue.
        AdmissionStatus.SUBMITTED: (
            AdmissionStatus.UNDER_REVIEW,
            AdmissionStatus.ACCEPTED,
            AdmissionStatus.REJECTED,
        ),
        AdmissionStatus.UNDER_REVIEW: (AdmissionStatus.ACCEPTED, AdmissionStatus.REJECTED),
    }),
    description="Applicant's admission application, decided by the director.",
)

DEFAULT_LIFECYCLES: tuple[LifecycleDefinition, ...] = (
    GRADE_SUBMISSION_LIFECYCLE,
    STUDENT_GRADE_LIFECYCLE,
    PAYMENT_LIFECYCLE,
    DEFERMENT_LIFECYCLE,
    BUDGET_LIFECYCLE,
    NOTIFICATION_LIFECYCLE,
    ADMISSION_LIFECYCLE,
)


class LifecycleRegistry:
    """Lookup of lifecycle definitions by record type."""

    def __init__(self, definitions: Iterable[LifecycleDefinition] = DEFAULT_LIFECYCLES):
        self._definitions: dict[str, LifecycleDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: LifecycleDefinition) -> None:
        if definition.record_type in self._definitions:
            raise InvalidLifecycleDefinitionError(
                definition.record_type, "record type already registered",
            )
        self._definitions[definition.record_type] = definition

    def get(self, record_type: str | Enum) -> LifecycleDefinition:
        key = record_type.value if isinstance(record_type, Enum) else str(record_type)
        try:
            return self._definitions[key]
        except KeyError:
            raise UnknownRecordTypeError(key) from None

    def __contains__(self, record_type: object) -> bool:
        key = record_type.value if isinstance(record_type, Enum) else record_type
        return key in self._definitions

    @property
    def record_types(self) -> tuple[str, ...]:
        return tuple(self._definitions)
