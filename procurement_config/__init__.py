"""
procurement_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files directly.  Returns a frozen ``EngineConfig``.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  This package
    sits above ``procurement_kernel`` and below ``procurement_services``.
    The kernel MUST NEVER import from ``procurement_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ConfigValidationError`` (a ``ValueError``) -- invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``ENGINE_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying every transition to the configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from procurement_config.loader import ConfigValidationError, load_engine_config
from procurement_config.schema import EngineConfig, NotificationSettings, PaymentSettings

_logger = logging.getLogger("procurement_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a YAML configuration file.
            Defaults to procurement_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If a value is invalid.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_engine_config(path)

    _logger.info(
        "ENGINE_CONFIG_TRACE",
        extra={
            "trace_type": "ENGINE_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "currency": config.currency,
            "max_revision_cycles": config.max_revision_cycles,
            "payment_provider": config.payment.provider,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "ConfigValidationError",
    "EngineConfig",
    "NotificationSettings",
    "PaymentSettings",
]
