"""
Module: registrar_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines used by
    the registrar reporting views.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import registrar_kernel domain types and utilities.

Invariants enforced:
    - Purity: engines never read the clock or the database; callers pass
      snapshots in.
    - Decimal-only arithmetic for amounts.

Audit relevance:
    Every engine invocation is traced via the ``@traced_engine`` decorator
    (see ``registrar_engines.tracer``), emitting REGISTRAR_ENGINE_TRACE log
    records.
"""

from registrar_engines.aggregation import UNASSIGNED, Aggregate, summarize
from registrar_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "Aggregate",
    "UNASSIGNED",
    "compute_input_fingerprint",
    "summarize",
    "traced_engine",
]
