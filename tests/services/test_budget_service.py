"""
Tests for BudgetService (``registrar_kernel.services.budget_service``).

Invariants tested:
- remainingAmount == allocatedAmount - spentAmount after every expense,
  with Decimal arithmetic and amounts stored as strings.
- An active budget moves to exhausted when nothing remains.
- Expenses are refused for pending and closed budgets.
"""

from decimal import Decimal

import pytest

from registrar_kernel.domain.lifecycle import RecordType
from registrar_kernel.exceptions import ForbiddenOperationError
from registrar_kernel.services.budget_service import BudgetService


@pytest.fixture
def budget_service(lifecycle_engine) -> BudgetService:
    return BudgetService(lifecycle_engine)


@pytest.fixture
def active_budget(create_budget, lifecycle_engine):
    def _create(allocated: str = "5000.00"):
        budget = create_budget(allocated=allocated)
        return lifecycle_engine.transition(budget.id, "active", "bursar").record

    return _create


class TestRecordExpense:
    def test_expense_updates_amounts(self, budget_service, active_budget, deterministic_clock):
        budget = active_budget("5000.00")

        updated = budget_service.record_expense(budget.id, "1500.00", "bursar", "Journals")

        assert updated.status == "active"
        assert updated.payload["spentAmount"] == "1500.00"
        assert updated.payload["remainingAmount"] == "3500.00"
        assert updated.payload["utilizationPercentage"] == 30
        assert updated.payload["lastExpenseDate"] == deterministic_clock.now().isoformat()
        (expense,) = updated.payload["expenses"]
        assert expense["amount"] == "1500.00"
        assert expense["description"] == "Journals"
        assert expense["recordedBy"] == "bursar"

    def test_expenses_accumulate(self, budget_service, active_budget):
        budget = active_budget("1000")
        budget_service.record_expense(budget.id, Decimal("100.10"), "bursar")
        updated = budget_service.record_expense(budget.id, 200, "bursar", reference="INV-7")

        spent = Decimal(updated.payload["spentAmount"])
        remaining = Decimal(updated.payload["remainingAmount"])
        assert spent == Decimal("300.10")
        assert remaining == Decimal("1000") - spent
        assert [e["reference"] for e in updated.payload["expenses"]] == [None, "INV-7"]

    def test_spending_everything_exhausts_the_budget(self, budget_service, active_budget):
        budget = active_budget("1000.00")

        updated = budget_service.record_expense(budget.id, "1000.00", "bursar")

        assert updated.status == "exhausted"
        assert Decimal(updated.payload["remainingAmount"]) == 0
        last = updated.last_transition
        assert (last.from_status, last.to_status) == ("active", "exhausted")
        assert last.note == "remaining amount reached zero"
        assert last.actor == "bursar"

    def test_exhausted_budget_records_overspend(self, budget_service, active_budget):
        budget = active_budget("100")
        budget_service.record_expense(budget.id, "100", "bursar")

        updated = budget_service.record_expense(budget.id, "25.50", "bursar")

        assert updated.status == "exhausted"
        assert Decimal(updated.payload["remainingAmount"]) == Decimal("-25.50")
        assert len(updated.actor_history) == 2

    def test_reopened_budget_accepts_expenses(self, budget_service, active_budget, lifecycle_engine):
        budget = active_budget("100")
        budget_service.record_expense(budget.id, "100", "bursar")
        lifecycle_engine.transition(budget.id, "active", "bursar", note="top-up approved")

        updated = budget_service.record_expense(budget.id, "10", "bursar")
        # still nothing remaining, so it is exhausted again
        assert updated.status == "exhausted"


class TestExhaustionRace:
    @pytest.fixture
    def interleaved_edit(self, record_store, monkeypatch):
        """Land one more payload edit right after the next expense commits."""
        real_update = record_store.update

        def update_then_edit(record_id, changes, **kwargs):
            committed = real_update(record_id, changes, **kwargs)
            monkeypatch.setattr(record_store, "update", real_update)
            real_update(record_id, {"note": "reviewed by auditor"}, actor="auditor")
            return committed

        monkeypatch.setattr(record_store, "update", update_then_edit)

    def test_conflict_after_expense_returns_committed_budget(
        self, budget_service, active_budget, record_store, interleaved_edit, captured_logs,
    ):
        budget = active_budget("100.00")

        returned = budget_service.record_expense(budget.id, "100.00", "bursar")

        stored = record_store.get(budget.id)
        assert returned == stored
        assert stored.status == "active"
        assert stored.payload["spentAmount"] == "100.00"
        assert stored.payload["remainingAmount"] == "0.00"
        assert stored.payload["note"] == "reviewed by auditor"
        assert len(stored.payload["expenses"]) == 1
        assert any(r["message"] == "budget_exhaustion_deferred" for r in captured_logs())

    def test_check_exhaustion_completes_deferred_transition(
        self, budget_service, active_budget, interleaved_edit,
    ):
        budget = active_budget("100.00")
        budget_service.record_expense(budget.id, "100.00", "bursar")

        exhausted = budget_service.check_exhaustion(budget.id, "bursar")

        assert exhausted.status == "exhausted"
        assert exhausted.last_transition.note == "remaining amount reached zero"
        assert len(exhausted.payload["expenses"]) == 1

    def test_check_exhaustion_leaves_funded_budget_alone(self, budget_service, active_budget):
        budget = active_budget("100.00")
        budget_service.record_expense(budget.id, "40.00", "bursar")

        assert budget_service.check_exhaustion(budget.id, "bursar").status == "active"


class TestRefusals:
    @pytest.mark.parametrize("amount", ["0", "-5", "abc", None, True])
    def test_non_positive_or_non_numeric_amount(self, budget_service, active_budget, amount):
        budget = active_budget()
        with pytest.raises(ValueError):
            budget_service.record_expense(budget.id, amount, "bursar")

    def test_pending_budget_refused(self, budget_service, create_budget, record_store):
        budget = create_budget()
        with pytest.raises(ForbiddenOperationError) as exc_info:
            budget_service.record_expense(budget.id, "10", "bursar")
        assert exc_info.value.current_record.status == "pending"
        assert record_store.get(budget.id) == budget

    def test_closed_budget_refused(self, budget_service, active_budget, lifecycle_engine):
        budget = active_budget()
        lifecycle_engine.transition(budget.id, "closed", "bursar")
        with pytest.raises(ForbiddenOperationError):
            budget_service.record_expense(budget.id, "10", "bursar")

    def test_non_budget_refused(self, budget_service, record_store):
        payment = record_store.create(RecordType.PAYMENT, {"amount": "10"})
        with pytest.raises(ForbiddenOperationError):
            budget_service.record_expense(payment.id, "10", "bursar")
