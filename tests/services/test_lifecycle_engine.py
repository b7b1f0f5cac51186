"""
Tests for LifecycleEngine (``registrar_kernel.services.lifecycle_engine``).

Invariants tested:
- Only table edges are ever written; every other (type, from, to) fails
  with IllegalTransitionError and leaves the stored record untouched.
- N successful transitions leave N history entries, the last of which
  names the current status.
- ``expected_version`` guards against acting on a stale read.
- Observers run after commit in registration order; an observer failure
  is reported as partial success and never rolls the transition back.
"""

from collections import deque
from uuid import uuid4

import pytest

from registrar_kernel.domain.lifecycle import DEFAULT_LIFECYCLES, LifecycleDefinition, RecordType
from registrar_kernel.exceptions import (
    ConcurrentModificationError,
    IllegalTransitionError,
    MissingActorError,
    PartialSuccessError,
    RecordNotFoundError,
)


def _path_to(lifecycle: LifecycleDefinition, target: str) -> list[str]:
    """Shortest list of statuses that leads from the start state to ``target``."""
    queue = deque([(lifecycle.initial_state, [])])
    seen = {lifecycle.initial_state}
    while queue:
        state, path = queue.popleft()
        if state == target:
            return path
        for nxt in sorted(lifecycle.allowed_targets(state)):
            if nxt not in seen:
                seen.add(nxt)
                queue.append((nxt, path + [nxt]))
    raise AssertionError(f"{target} is unreachable in {lifecycle.record_type}")


def _illegal_pairs():
    for lifecycle in DEFAULT_LIFECYCLES:
        for from_status in lifecycle.states:
            for to_status in (*lifecycle.states, "archived"):
                if not lifecycle.can_transition(from_status, to_status):
                    yield pytest.param(
                        lifecycle,
                        from_status,
                        to_status,
                        id=f"{lifecycle.record_type}:{from_status}->{to_status}",
                    )


# =========================================================================
# Worked scenarios
# =========================================================================


class TestGradeSubmissionScenario:
    def test_approve_then_publish_derives_one_student_grade(
        self, lifecycle_engine, default_observers, create_grade_submission, record_store,
    ):
        submission = create_grade_submission(
            grades=[{"studentId": "S1", "total": 84, "grade": "A"}],
        )
        assert submission.status == "pending_approval"

        approved = lifecycle_engine.transition(submission.id, "approved", "examofficer1")
        assert approved.record.status == "approved"
        assert len(approved.record.actor_history) == 1

        published = lifecycle_engine.transition(submission.id, "published", "examofficer1")
        assert not published.partial_success
        assert published.record.status == "published"
        assert len(published.record.actor_history) == 2

        grades = list(record_store.query(RecordType.STUDENT_GRADE))
        assert len(grades) == 1
        assert grades[0].payload["studentId"] == "S1"
        assert grades[0].payload["grade"] == "A"
        assert grades[0].status == "published"


class TestPaymentScenario:
    def test_terminal_success_cannot_return_to_pending(self, lifecycle_engine, record_store):
        payment = record_store.create(RecordType.PAYMENT, {"amount": "250.00"})

        result = lifecycle_engine.transition(payment.id, "success", "system")
        assert result.record.status == "success"

        with pytest.raises(IllegalTransitionError) as exc_info:
            lifecycle_engine.transition(payment.id, "pending", "system")
        assert exc_info.value.code == "ILLEGAL_TRANSITION"
        assert exc_info.value.current_record.status == "success"
        assert record_store.get(payment.id).status == "success"


class TestAdmissionScenario:
    def test_director_decides_from_review(self, lifecycle_engine):
        application = lifecycle_engine.submit(
            RecordType.ADMISSION_APPLICATION,
            {"applicantName": "Ama Owusu", "programme": "BSc Computer Science"},
            submitted_by="applicant-17",
        )
        assert application.status == "draft"

        lifecycle_engine.transition(application.id, "submitted", "applicant-17")
        lifecycle_engine.transition(application.id, "Under Review", "director")
        result = lifecycle_engine.transition(
            application.id, "accepted", "director", note="meets entry requirements",
        )

        assert result.record.status == "accepted"
        assert [h.to_status for h in result.record.actor_history] == [
            "submitted", "under_review", "accepted",
        ]
        assert lifecycle_engine.allowed_transitions(application.id) == frozenset()


# =========================================================================
# Legality
# =========================================================================


class TestIllegalTransitions:
    @pytest.mark.parametrize("lifecycle, from_status, to_status", list(_illegal_pairs()))
    def test_rejected_and_record_unchanged(
        self, lifecycle_engine, record_store, lifecycle, from_status, to_status,
    ):
        record = record_store.create(lifecycle.record_type, {"ref": "x"})
        for step in _path_to(lifecycle, from_status):
            lifecycle_engine.transition(record.id, step, "setup")
        before = record_store.get(record.id)

        with pytest.raises(IllegalTransitionError):
            lifecycle_engine.transition(record.id, to_status, "tester")

        assert record_store.get(record.id) == before

    def test_display_spelling_of_legal_target_accepted(self, lifecycle_engine, create_grade_submission):
        submission = create_grade_submission()
        result = lifecycle_engine.transition(submission.id, "Approved", "examofficer1")
        assert result.to_status == "approved"

    def test_rejection_matches_lifecycle_check(self, lifecycle_engine, record_store, captured_logs):
        payment = record_store.create(RecordType.PAYMENT, {})
        lifecycle_engine.transition(payment.id, "failed", "gateway")
        stored = record_store.get(payment.id)
        lifecycle = lifecycle_engine.lifecycles.get(RecordType.PAYMENT)

        with pytest.raises(IllegalTransitionError) as expected:
            lifecycle.check_transition(stored.id, stored.status, "Success", current_record=stored)
        with pytest.raises(IllegalTransitionError) as exc_info:
            lifecycle_engine.transition(payment.id, "Success", "gateway")

        assert str(exc_info.value) == str(expected.value)
        assert exc_info.value.to_status == "success"
        assert exc_info.value.current_record == stored
        (rejected,) = [r for r in captured_logs() if r["message"] == "transition_rejected"]
        assert rejected["to_status"] == "success"
        assert rejected["record_id"] == str(payment.id)

    @pytest.mark.parametrize("actor", ["", "   ", None])
    def test_actor_required(self, lifecycle_engine, record_store, actor):
        payment = record_store.create(RecordType.PAYMENT, {})
        with pytest.raises(MissingActorError) as exc_info:
            lifecycle_engine.transition(payment.id, "success", actor)
        assert exc_info.value.code == "MISSING_ACTOR"
        assert exc_info.value.current_record == payment
        assert record_store.get(payment.id).status == "pending"

    def test_unknown_record(self, lifecycle_engine):
        with pytest.raises(RecordNotFoundError):
            lifecycle_engine.transition(uuid4(), "success", "system")

    def test_allowed_transitions(self, lifecycle_engine, create_budget):
        budget = create_budget()
        assert lifecycle_engine.allowed_transitions(budget.id) == {"active", "closed"}
        lifecycle_engine.transition(budget.id, "closed", "bursar")
        assert lifecycle_engine.allowed_transitions(budget.id) == frozenset()


# =========================================================================
# History integrity
# =========================================================================


class TestHistory:
    def test_history_tracks_every_transition(
        self, lifecycle_engine, create_budget, deterministic_clock,
    ):
        budget = create_budget()
        steps = ["active", "exhausted", "active", "exhausted", "closed"]

        for n, status in enumerate(steps, start=1):
            deterministic_clock.advance(60)
            record = lifecycle_engine.transition(
                budget.id, status, "bursar", note=f"step {n}",
            ).record
            assert len(record.actor_history) == n
            assert record.actor_history[-1].to_status == record.status
            assert record.updated_at == deterministic_clock.now()
            record.check_invariants()

        stored = lifecycle_engine.get(budget.id)
        assert [h.to_status for h in stored.actor_history] == steps
        assert [h.note for h in stored.actor_history] == [f"step {n}" for n in range(1, 6)]
        assert stored.created_at == budget.created_at
        assert stored.version == budget.version + len(steps)

    def test_history_entry_fields(self, lifecycle_engine, create_deferment_request, deterministic_clock):
        request = create_deferment_request()
        deterministic_clock.advance(30)
        record = lifecycle_engine.transition(request.id, "declined", "director", "incomplete form").record

        entry = record.last_transition
        assert entry.actor == "director"
        assert entry.from_status == "pending"
        assert entry.to_status == "declined"
        assert entry.at == deterministic_clock.now()
        assert entry.note == "incomplete form"


# =========================================================================
# Optimistic concurrency (single thread)
# =========================================================================


class TestExpectedVersion:
    def test_matching_version_applies(self, lifecycle_engine, record_store):
        payment = record_store.create(RecordType.PAYMENT, {})
        result = lifecycle_engine.transition(
            payment.id, "processing", "gateway", expected_version=payment.version,
        )
        assert result.record.version == payment.version + 1

    def test_stale_version_rejected_with_refreshed_record(self, lifecycle_engine, record_store):
        payment = record_store.create(RecordType.PAYMENT, {})
        lifecycle_engine.transition(payment.id, "processing", "gateway")

        with pytest.raises(ConcurrentModificationError) as exc_info:
            lifecycle_engine.transition(
                payment.id, "success", "gateway", expected_version=payment.version,
            )
        assert exc_info.value.code == "CONCURRENT_MODIFICATION"
        assert exc_info.value.current_record.status == "processing"
        assert record_store.get(payment.id).status == "processing"


# =========================================================================
# Observers
# =========================================================================


class TestObserversAfterCommit:
    def test_handlers_see_committed_record(self, lifecycle_engine, observer_registry, record_store):
        seen = []

        def on_success(record):
            seen.append(record_store.get(record.id).status)

        observer_registry.register(RecordType.PAYMENT, "success", on_success)
        payment = record_store.create(RecordType.PAYMENT, {})
        lifecycle_engine.transition(payment.id, "success", "system")

        assert seen == ["success"]

    def test_handlers_only_fire_for_their_status(self, lifecycle_engine, observer_registry, record_store):
        calls = []
        observer_registry.register(RecordType.PAYMENT, "failed", calls.append)
        payment = record_store.create(RecordType.PAYMENT, {})
        lifecycle_engine.transition(payment.id, "success", "system")
        assert calls == []

    def test_failing_observer_yields_partial_success(
        self, lifecycle_engine, observer_registry, record_store, captured_logs,
    ):
        calls = []

        def broken(record):
            raise RuntimeError("mail server down")

        observer_registry.register(RecordType.PAYMENT, "success", broken)
        observer_registry.register(RecordType.PAYMENT, "success", calls.append)
        payment = record_store.create(RecordType.PAYMENT, {})

        result = lifecycle_engine.transition(payment.id, "success", "system")

        assert result.partial_success
        assert result.record.status == "success"
        assert [f.error_type for f in result.observer_errors] == ["RuntimeError"]
        assert len(calls) == 1
        assert record_store.get(payment.id).status == "success"
        with pytest.raises(PartialSuccessError) as exc_info:
            result.raise_for_partial()
        assert exc_info.value.current_record == result.record

        messages = [r["message"] for r in captured_logs()]
        assert "observer_failed" in messages
        assert "transition_partial_success" in messages


class TestLogging:
    def test_transition_logged(self, lifecycle_engine, record_store, captured_logs):
        payment = record_store.create(RecordType.PAYMENT, {})
        lifecycle_engine.transition(payment.id, "success", "bursar")

        entry = next(r for r in captured_logs() if r["message"] == "record_transitioned")
        assert entry["record_id"] == str(payment.id)
        assert entry["actor_id"] == "bursar"
        assert entry["from_status"] == "pending"
        assert entry["to_status"] == "success"
