"""
Configuration Loader (``procurement_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into a validated, frozen
``EngineConfig``.  The single public entry point for runtime config is
``procurement_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on services;
currency validation reuses the kernel's ISO 4217 table and decimal
coercion reuses ``to_decimal``.

Invariants enforced
-------------------
* Every parse error raises ``ConfigValidationError`` (a ``ValueError``)
  naming the offending key; no silent coercion of bad values.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ConfigValidationError``.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from procurement_config.schema import EngineConfig, NotificationSettings, PaymentSettings
from procurement_kernel.db.types import InvalidCurrencyError, validate_currency
from procurement_kernel.domain.values import to_decimal
from procurement_kernel.utils.hashing import hash_payload


class ConfigValidationError(ValueError):
    """Configuration file contains an invalid value."""

    def __init__(self, key: str, value: Any, reason: str):
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid configuration value for {key!r}: {value!r} ({reason})")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization of ``data``."""
    return hash_payload(data)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigValidationError(key, value, "expected a mapping")
    return value


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_decimal(key: str, value: Any) -> Decimal:
    try:
        return to_decimal(value, key)
    except ValueError as e:
        raise ConfigValidationError(key, value, "expected a decimal string or integer") from e


def parse_payment(data: dict[str, Any]) -> PaymentSettings:
    provider = data.get("provider", "MOMO")
    if not isinstance(provider, str) or not provider.strip():
        raise ConfigValidationError("payment.provider", provider, "expected a non-empty string")

    codes = data.get("success_codes", [0])
    if not isinstance(codes, list) or not codes or not all(_is_int(c) for c in codes):
        raise ConfigValidationError(
            "payment.success_codes", codes, "expected a non-empty list of integers",
        )

    rate = _parse_decimal("payment.commission_rate", data.get("commission_rate", "0.01"))
    if not Decimal("0") <= rate < Decimal("1"):
        raise ConfigValidationError("payment.commission_rate", rate, "expected 0 <= rate < 1")
    step = _parse_decimal("payment.commission_step", data.get("commission_step", 1000))
    if step <= 0:
        raise ConfigValidationError("payment.commission_step", step, "expected a positive amount")

    return PaymentSettings(
        provider=provider.strip().upper(),
        success_codes=tuple(codes),
        commission_rate=rate,
        commission_step=step,
    )


def parse_notifications(data: dict[str, Any]) -> NotificationSettings:
    enabled = data.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigValidationError("notifications.enabled", enabled, "expected a boolean")
    return NotificationSettings(enabled=enabled)


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Parse and validate an ``EngineConfig`` from a dict.

    Raises:
        ConfigValidationError: on any invalid value.
    """
    currency = data.get("currency", "VND")
    try:
        currency = validate_currency(currency)
    except InvalidCurrencyError as e:
        raise ConfigValidationError("currency", currency, str(e)) from e

    workflow = _section(data, "workflow")
    max_cycles = workflow.get("max_revision_cycles", 5)
    if max_cycles is not None and (not _is_int(max_cycles) or max_cycles < 1):
        raise ConfigValidationError(
            "workflow.max_revision_cycles", max_cycles, "expected an integer >= 1 or null",
        )

    version = data.get("version", 1)
    if not _is_int(version):
        raise ConfigValidationError("version", version, "expected an integer")

    return EngineConfig(
        config_id=str(data.get("config_id", "default")),
        version=version,
        currency=currency,
        max_revision_cycles=max_cycles,
        payment=parse_payment(_section(data, "payment")),
        notifications=parse_notifications(_section(data, "notifications")),
        checksum=compute_checksum(data),
    )


def load_engine_config(path: Path) -> EngineConfig:
    """Load and validate the configuration file at ``path``."""
    return parse_engine_config(load_yaml_file(path))
