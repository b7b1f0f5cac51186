"""
Config -> Kernel Bridges.

Functions that convert a RegistrarConfig into running kernel objects.
These live in registrar_config (the producer) because the kernel must
NEVER import registrar_config.

Usage:
    from registrar_config import get_active_config
    from registrar_config.bridges import build_engine

    engine = build_engine(get_active_config())
    record = engine.submit("payment", {"amount": "250.00"}, submitted_by="bursar")
"""

from __future__ import annotations

from registrar_config.loader import log_level_number
from registrar_config.schema import RegistrarConfig
from registrar_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
)
from registrar_kernel.domain.academic import AcademicPeriod
from registrar_kernel.domain.clock import Clock
from registrar_kernel.domain.lifecycle import LifecycleRegistry
from registrar_kernel.logging_config import configure_logging
from registrar_kernel.services.derived_records import register_default_observers
from registrar_kernel.services.lifecycle_engine import LifecycleEngine
from registrar_kernel.services.observers import ObserverRegistry
from registrar_kernel.services.record_store import RecordStore


def build_academic_period(config: RegistrarConfig) -> AcademicPeriod:
    """Build the kernel AcademicPeriod from the config's academic_period."""
    return AcademicPeriod(
        academic_year=config.academic_period.academic_year,
        semester=config.academic_period.semester,
    )


def build_engine(
    config: RegistrarConfig,
    clock: Clock | None = None,
    lifecycles: LifecycleRegistry | None = None,
) -> LifecycleEngine:
    """Initialise the database and return a LifecycleEngine with the default observers.

    Postconditions:
        Logging is configured at ``config.log_level``, the module-level
        database engine points at ``config.store.database_url`` and all
        tables exist.
    """
    configure_logging(level=log_level_number(config))
    store_config = config.store
    init_engine_from_url(
        store_config.database_url,
        echo=store_config.echo,
        pool_size=store_config.pool_size,
        max_overflow=store_config.max_overflow,
        pool_timeout=store_config.pool_timeout_seconds,
        sqlite_busy_timeout=store_config.sqlite_busy_timeout_seconds,
    )
    create_tables()

    store = RecordStore(
        get_session_factory(),
        lifecycles=lifecycles or LifecycleRegistry(),
        clock=clock,
        page_size=store_config.query_page_size,
    )
    observers = ObserverRegistry(store.lifecycles)
    register_default_observers(observers, store, build_academic_period(config))
    return LifecycleEngine(store, observers=observers)
