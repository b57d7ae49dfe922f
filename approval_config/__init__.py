"""
approval_config -- public entrypoint for approval configuration.

Responsibility:
    ``load_configuration()`` reads, parses and validates the YAML document
    and returns a frozen ``ApprovalConfiguration``.  Without a path it
    loads the packaged defaults (``defaults/approval.yaml``).

Invariants enforced:
    - A configuration with validation errors is never returned.
    - Every successful load emits an ``APPROVAL_CONFIG_TRACE`` record with
      the checksum, so each request can be tied back to the configuration
      that created it.

Failure modes:
    - ``ConfigurationMissingError`` -- the file does not exist.
    - ``InvalidConfigurationError`` -- malformed YAML, unparseable values,
      or validation errors.
"""

from __future__ import annotations

from pathlib import Path

import yaml

from approval_config.loader import compute_checksum, load_yaml_file, parse_configuration
from approval_config.provider import ConfigurationProvider, StaticConfigurationProvider
from approval_config.schema import ApprovalConfiguration, EngineSettings
from approval_config.validator import ConfigValidationResult, validate_configuration
from approval_kernel.exceptions import ConfigurationMissingError, InvalidConfigurationError
from approval_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "approval.yaml"

__all__ = [
    "ApprovalConfiguration",
    "ConfigValidationResult",
    "ConfigurationProvider",
    "DEFAULT_CONFIG_PATH",
    "EngineSettings",
    "StaticConfigurationProvider",
    "compute_checksum",
    "load_configuration",
    "validate_configuration",
]


def load_configuration(path: Path | str | None = None) -> ApprovalConfiguration:
    """Load, parse and validate an approval configuration file."""
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    source = str(config_path)

    if not config_path.is_file():
        raise ConfigurationMissingError("approval configuration file", source)

    try:
        data = load_yaml_file(config_path)
        if not isinstance(data, dict):
            raise ValueError("top-level document must be a mapping")
        config = parse_configuration(data, source=source)
    except (yaml.YAMLError, KeyError, TypeError, ValueError) as exc:
        raise InvalidConfigurationError([f"{type(exc).__name__}: {exc}"], source) from exc

    validation = validate_configuration(config)
    for warning in validation.warnings:
        _logger.warning("configuration_warning", extra={"warning": warning, "source": source})
    if not validation.is_valid:
        raise InvalidConfigurationError(validation.errors, source)

    _logger.info(
        "APPROVAL_CONFIG_TRACE",
        extra={
            "trace_type": "APPROVAL_CONFIG_TRACE",
            "source": source,
            "checksum": config.checksum,
            "threshold_count": len(config.thresholds),
            "escalation_enabled": config.escalation.enabled,
            "escalation_levels": len(config.escalation.levels),
        },
    )
    return config
