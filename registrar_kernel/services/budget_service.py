"""
registrar_kernel.services.budget_service -- Expense tracking against budgets.

Responsibility:
    Record an expense on a departmental budget: add it to
    ``spentAmount``, recompute ``remainingAmount`` and move an active
    budget to ``exhausted`` once nothing remains.

Architecture position:
    Kernel > Services.  Writes the payload through the RecordStore and the
    status through the LifecycleEngine; never touches the ORM directly.

Invariants enforced:
    - Amount arithmetic is Decimal; amounts are stored as strings.
    - ``remainingAmount == allocatedAmount - spentAmount`` after every
      expense.
    - Expenses are only accepted while the budget is active or exhausted
      (over-spending an exhausted budget is recorded, not refused).

Failure modes:
    - ValueError on a non-positive or non-numeric amount.
    - ForbiddenOperationError when the record is not a budget or is
      pending/closed.
    - ConcurrentModificationError when another writer moved the budget
      between the read and the expense write.  A conflict on the follow-up
      exhaustion transition is not raised: the expense is already
      committed, so the stored budget is returned and exhaustion is left
      to ``check_exhaustion``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from registrar_kernel.domain.lifecycle import BudgetStatus, RecordType
from registrar_kernel.domain.records import Record
from registrar_kernel.exceptions import ConcurrentModificationError, ForbiddenOperationError
from registrar_kernel.logging_config import get_logger
from registrar_kernel.services.lifecycle_engine import LifecycleEngine
from registrar_kernel.utils.payload import to_decimal

logger = get_logger("services.budget_service")

_SPENDABLE = frozenset({BudgetStatus.ACTIVE.value, BudgetStatus.EXHAUSTED.value})


class BudgetService:
    """Applies expenses to budget records."""

    def __init__(self, engine: LifecycleEngine):
        self._engine = engine
        self._store = engine.store

    def record_expense(
        self,
        budget_id: UUID | str,
        amount: Decimal | int | str,
        actor: str,
        description: str = "",
        reference: str | None = None,
    ) -> Record:
        """Charge ``amount`` to the budget and return its committed state."""
        value = to_decimal(amount)
        if value is None or value <= 0:
            raise ValueError(f"Expense amount must be a positive number, got {amount!r}")

        budget = self._store.get(budget_id)
        if budget.record_type != RecordType.BUDGET.value:
            raise ForbiddenOperationError(
                budget.id, "record_expense", f"{budget.record_type} is not a budget",
                current_record=budget,
            )
        if budget.status not in _SPENDABLE:
            raise ForbiddenOperationError(
                budget.id, "record_expense", f"budget is {budget.status}",
                current_record=budget,
            )

        now = self._engine.clock.now()

        def apply(payload: dict[str, Any]) -> dict[str, Any]:
            allocated = to_decimal(payload.get("allocatedAmount")) or Decimal("0")
            spent = (to_decimal(payload.get("spentAmount")) or Decimal("0")) + value
            expenses = list(payload.get("expenses") or [])
            expenses.append({
                "amount": value,
                "description": description,
                "reference": reference,
                "recordedBy": actor,
                "recordedAt": now,
            })
            changes: dict[str, Any] = {
                "spentAmount": spent,
                "remainingAmount": allocated - spent,
                "lastExpenseDate": now,
                "expenses": expenses,
            }
            if allocated > 0:
                changes["utilizationPercentage"] = int(
                    (spent * 100 / allocated).to_integral_value()
                )
            return changes

        updated = self._store.update(
            budget.id, apply, actor=actor, expected_version=budget.version,
        )
        remaining = to_decimal(updated.payload.get("remainingAmount")) or Decimal("0")

        logger.info(
            "budget_expense_recorded",
            extra={
                "record_id": str(updated.id),
                "amount": value,
                "remaining": remaining,
                "recorded_by": actor,
            },
        )

        # The expense is committed at this point.  Losing the race for the
        # status change leaves exhaustion to check_exhaustion.
        try:
            return self._exhaust_if_spent(updated, actor)
        except ConcurrentModificationError as exc:
            current = exc.current_record or self._store.get(updated.id)
            logger.warning(
                "budget_exhaustion_deferred",
                extra={
                    "record_id": str(updated.id),
                    "expected_version": exc.expected_version,
                    "status": current.status,
                },
            )
            return current

    def check_exhaustion(self, budget_id: UUID | str, actor: str) -> Record:
        """Move an active budget with nothing remaining to ``exhausted``.

        Re-decides against the stored state, so it is safe to call after
        ``record_expense`` returned a budget that is still active.
        """
        budget = self._store.get(budget_id)
        if budget.record_type != RecordType.BUDGET.value:
            raise ForbiddenOperationError(
                budget.id, "check_exhaustion", f"{budget.record_type} is not a budget",
                current_record=budget,
            )
        return self._exhaust_if_spent(budget, actor)

    def _exhaust_if_spent(self, budget: Record, actor: str) -> Record:
        remaining = to_decimal(budget.payload.get("remainingAmount")) or Decimal("0")
        if budget.status != BudgetStatus.ACTIVE.value or remaining > 0:
            return budget
        result = self._engine.transition(
            budget.id,
            BudgetStatus.EXHAUSTED,
            actor,
            note="remaining amount reached zero",
            expected_version=budget.version,
        )
        return result.record
