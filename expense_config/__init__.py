"""
expense_config -- single public entrypoint for expense configuration.

Responsibility:
    Provides the one way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a validated, frozen ``ExpenseConfig``
    carrying the policy toggles, reference-number format and seed data.

Architecture position:
    Configuration -- YAML-driven, validated before use.  This package sits
    above ``expense_kernel``; the kernel never imports from it except for
    type hints.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``ConfigValidationError`` (a ``ValueError``) -- validation errors.
    - ``yaml.YAMLError`` / ``KeyError`` -- malformed source file.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``EXPENSE_CONFIG_TRACE`` log entry with the config name, version and
    checksum.  The same checksum is recorded in the audit log when the
    configuration seeds reference data.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from expense_config.loader import load_config_file
from expense_config.schema import (
    ExpenseConfig,
    ReferenceSettings,
    SeedCategory,
    SeedData,
    SeedNamed,
    SeedSubcategory,
    SeedUser,
)
from expense_config.validator import (
    ConfigValidationError,
    ConfigValidationResult,
    validate_configuration,
)

_logger = logging.getLogger("expense_kernel.config")

CONFIG_DIR_ENV = "EXPENSE_CONFIG_DIR"

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    config_dir: Path | None = None,
    name: str = "default",
) -> ExpenseConfig:
    """The public configuration entrypoint.

    Args:
        config_dir: Override path to the configuration sets directory.
            Falls back to ``$EXPENSE_CONFIG_DIR``, then expense_config/sets/.
        name: Configuration set name; ``<name>.yaml`` inside the directory.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ConfigValidationError: If configuration validation fails.
    """
    env_dir = os.environ.get(CONFIG_DIR_ENV)
    sets_dir = config_dir or (Path(env_dir) if env_dir else _DEFAULT_CONFIG_DIR)

    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set not found: {path}")

    config = load_config_file(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ConfigValidationError(validation.errors)
    for warning in validation.warnings:
        _logger.warning(
            "config_validation_warning",
            extra={"config_name": config.name, "warning": warning},
        )

    _logger.info(
        "EXPENSE_CONFIG_TRACE",
        extra={
            "trace_type": "EXPENSE_CONFIG_TRACE",
            "config_name": config.name,
            "config_version": config.version,
            "checksum": config.checksum,
            "category_count": len(config.seed.categories),
            "user_count": len(config.seed.users),
        },
    )
    return config


__all__ = [
    "CONFIG_DIR_ENV",
    "ConfigValidationError",
    "ConfigValidationResult",
    "ExpenseConfig",
    "ReferenceSettings",
    "SeedCategory",
    "SeedData",
    "SeedNamed",
    "SeedSubcategory",
    "SeedUser",
    "get_active_config",
    "validate_configuration",
]
