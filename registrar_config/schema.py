"""
RegistrarConfig schema.

Typed, frozen view of a configuration set.  YAML files are parsed into
these types by the loader; nothing else in the system reads the YAML.
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StoreConfig:
    """Database connection and paging settings for the record store."""

    database_url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout_seconds: int = 30
    sqlite_busy_timeout_seconds: float = 30.0
    query_page_size: int = 100


# ---------------------------------------------------------------------------
# Academic period
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AcademicPeriodDef:
    """The academic year and semester in force, already normalised."""

    academic_year: str  # "YYYY/YYYY"
    semester: int  # 1 or 2


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RegistrarConfig:
    """A complete, validated configuration set."""

    config_id: str
    version: int
    academic_period: AcademicPeriodDef
    store: StoreConfig
    log_level: str = "INFO"
    checksum: str = ""
