"""
Configuration Schema (``procurement_config.schema``).

Responsibility
--------------
Frozen dataclasses describing the engine configuration.  Instances are
produced only by ``procurement_config.loader`` and handed to the
coordinator by ``get_active_config()``.

Architecture position
---------------------
**Config layer** -- pure data, no I/O, no kernel imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class PaymentSettings:
    """Payment gateway integration settings."""

    provider: str = "MOMO"
    success_codes: tuple[int, ...] = (0,)
    commission_rate: Decimal = Decimal("0.01")
    commission_step: Decimal = Decimal("1000")

    def is_success(self, result_code: int) -> bool:
        return result_code in self.success_codes


@dataclass(frozen=True)
class NotificationSettings:
    enabled: bool = True


@dataclass(frozen=True)
class EngineConfig:
    """
    Validated engine configuration.

    ``max_revision_cycles`` of None means the revision cycle is unbounded.
    """

    config_id: str = "default"
    version: int = 1
    currency: str = "VND"
    max_revision_cycles: int | None = 5
    payment: PaymentSettings = field(default_factory=PaymentSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    checksum: str = ""
