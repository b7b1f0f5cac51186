"""
Module: registrar_engines.aggregation
Responsibility:
    Summarise a snapshot of records for the dashboard views: how many
    records sit in each status and type, and the total of a numeric
    payload amount grouped by a caller-chosen payload key.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes Record snapshots; never reads the store itself.

Invariants enforced:
    - ``sum(counts_by_status.values()) == total_records`` and likewise for
      ``counts_by_type``.
    - Decimal-only arithmetic; booleans and non-numeric amounts are
      skipped, never coerced.
    - Records without the grouping key are summed under ``"unassigned"``.

Failure modes:
    - None for well-formed Records.  A record whose payload is not a
      mapping contributes to the counts but not to the sums.

Usage:
    from registrar_engines.aggregation import summarize

    report = summarize(store.query("budget"), group_by="department",
                       amount_field="allocatedAmount")
    report.counts_by_status["active"]
    report.sum_by_category["Finance"]
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping

from registrar_kernel.domain.records import Record
from registrar_kernel.utils.payload import to_decimal
from registrar_engines.tracer import traced_engine

UNASSIGNED = "unassigned"


@dataclass(frozen=True)
class Aggregate:
    """
    Summary of one record snapshot.

    Contract:
        Frozen; the mappings are plain dicts built once and never mutated.
    Guarantees:
        - Count mappings only contain keys with a count of at least 1.
        - ``sum_by_category`` only contains categories that had at least
          one numeric amount.
    """

    total_records: int
    counts_by_status: Mapping[str, int] = field(default_factory=dict)
    counts_by_type: Mapping[str, int] = field(default_factory=dict)
    sum_by_category: Mapping[str, Decimal] = field(default_factory=dict)

    @property
    def total_amount(self) -> Decimal:
        return sum(self.sum_by_category.values(), Decimal("0"))

    def count(self, status: str) -> int:
        return self.counts_by_status.get(status, 0)


def _category(record: Record, group_by: str | None) -> str:
    if group_by is None:
        return record.record_type
    value = record.payload.get(group_by)
    if value is None or value == "":
        return UNASSIGNED
    return str(value)


@traced_engine("aggregation", "1.0", fingerprint_fields=("group_by", "amount_field"))
def summarize(
    records: Iterable[Record],
    *,
    group_by: str | None = None,
    amount_field: str = "amount",
) -> Aggregate:
    """Count records per status and type; sum ``amount_field`` per category.

    ``records`` is consumed once, so a RecordQuery or any other iterable
    works.  With ``group_by=None`` amounts are summed per record type.
    """
    total = 0
    by_status: Counter[str] = Counter()
    by_type: Counter[str] = Counter()
    sums: dict[str, Decimal] = {}

    for record in records:
        total += 1
        by_status[record.status] += 1
        by_type[record.record_type] += 1

        payload: Any = record.payload
        if not isinstance(payload, Mapping):
            continue
        amount = to_decimal(payload.get(amount_field))
        if amount is None:
            continue
        category = _category(record, group_by)
        sums[category] = sums.get(category, Decimal("0")) + amount

    return Aggregate(
        total_records=total,
        counts_by_status=dict(by_status),
        counts_by_type=dict(by_type),
        sum_by_category=sums,
    )
