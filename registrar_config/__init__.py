"""
registrar_config -- single public entrypoint for registrar configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component may read configuration
    files or environment variables directly.

Architecture position:
    Configuration -- YAML-driven, validated on load.  This package sits
    above ``registrar_kernel``.  The kernel MUST NEVER import from
    ``registrar_config``; ``registrar_config.bridges`` translates the
    config into kernel objects.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- missing keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``REGISTRAR_CONFIG_TRACE`` log entry containing the config_id,
    version, checksum and academic period.
"""

from __future__ import annotations

import logging
from pathlib import Path

from registrar_config.loader import compute_checksum, load_yaml_file, parse_config
from registrar_config.schema import AcademicPeriodDef, RegistrarConfig, StoreConfig

_logger = logging.getLogger("registrar_kernel.config")

# Default configuration set
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> RegistrarConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration YAML file.
            Defaults to registrar_config/sets/default.yaml.

    Returns:
        RegistrarConfig -- frozen and validated.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)
    config = parse_config(data, checksum=compute_checksum(data))

    _logger.info(
        "REGISTRAR_CONFIG_TRACE",
        extra={
            "trace_type": "REGISTRAR_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "academic_year": config.academic_period.academic_year,
            "semester": config.academic_period.semester,
            "config_path": str(path),
        },
    )
    return config


__all__ = [
    "AcademicPeriodDef",
    "RegistrarConfig",
    "StoreConfig",
    "get_active_config",
]
