"""
Registrar Kernel - record lifecycle engine for university administration.

A store of typed administrative records (grade submissions, payments,
budgets, deferment requests) with:
- Per-type closed status sets and transition tables
- Optimistic concurrency on every write
- Append-only actor history
- Best-effort observers for derived records
"""

__version__ = "0.1.0"
