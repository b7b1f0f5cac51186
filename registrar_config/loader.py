"""
Configuration Loader (``registrar_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``registrar_config.schema`` dataclasses.  The single public entry point
for runtime config is ``registrar_config.get_active_config()``.

Invariants enforced
-------------------
* Required keys have no silent defaults: a missing key raises
  ``ValueError`` naming it.
* Academic year and semester are normalised on load
  (``"2025-2026"`` -> ``"2025/2026"``, ``"First Semester"`` -> ``1``).
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing keys or bad values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from registrar_config.schema import AcademicPeriodDef, RegistrarConfig, StoreConfig
from registrar_kernel.domain.academic import normalize_academic_year, normalize_semester

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def _require(data: dict[str, Any], key: str, section: str) -> Any:
    if key not in data or data[key] is None:
        raise ValueError(f"Missing required configuration key: {section}.{key}")
    return data[key]


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return value


def parse_store(data: dict[str, Any]) -> StoreConfig:
    """Parse a StoreConfig from the ``store`` section."""
    busy_timeout = data.get("sqlite_busy_timeout_seconds", 30.0)
    if isinstance(busy_timeout, bool) or not isinstance(busy_timeout, (int, float)) or busy_timeout < 0:
        raise ValueError(
            f"store.sqlite_busy_timeout_seconds must be a non-negative number, got {busy_timeout!r}"
        )
    return StoreConfig(
        database_url=str(_require(data, "database_url", "store")),
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int(data.get("pool_size", 20), "store.pool_size"),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout_seconds=_positive_int(
            data.get("pool_timeout_seconds", 30), "store.pool_timeout_seconds",
        ),
        sqlite_busy_timeout_seconds=float(busy_timeout),
        query_page_size=_positive_int(
            data.get("query_page_size", 100), "store.query_page_size",
        ),
    )


def parse_academic_period(data: dict[str, Any]) -> AcademicPeriodDef:
    """Parse and normalise the ``academic_period`` section."""
    return AcademicPeriodDef(
        academic_year=normalize_academic_year(
            _require(data, "academic_year", "academic_period")
        ),
        semester=normalize_semester(_require(data, "semester", "academic_period")),
    )


def parse_config(data: dict[str, Any], checksum: str = "") -> RegistrarConfig:
    """
    Parse a complete ``RegistrarConfig`` from a loaded YAML mapping.

    Raises:
        ValueError: if required keys are missing or values are invalid.
    """
    period = _require(data, "academic_period", "root")
    store = _require(data, "store", "root")
    if not isinstance(period, dict) or not isinstance(store, dict):
        raise ValueError("academic_period and store must be mappings")

    log_level = str((data.get("logging") or {}).get("level", "INFO")).upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"Unknown logging.level: {log_level!r}")

    return RegistrarConfig(
        config_id=str(_require(data, "config_id", "root")),
        version=_positive_int(_require(data, "version", "root"), "version"),
        academic_period=parse_academic_period(period),
        store=parse_store(store),
        log_level=log_level,
        checksum=checksum,
    )


def log_level_number(config: RegistrarConfig) -> int:
    return getattr(logging, config.log_level)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
