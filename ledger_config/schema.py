"""
Ledger configuration schema.

Frozen dataclasses parsed from YAML by ``ledger_config.loader``.  These are
plain data; no component reads YAML or environment variables except through
``ledger_config.get_active_settings()`` and ``get_default_chart()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the ledger engine and its persistence layer."""

    database_url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    voucher_retry_attempts: int = 3
    balance_tolerance: Decimal = Decimal("0.01")
    money_places: int = 2
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.voucher_retry_attempts < 1:
            raise ValueError(
                f"voucher_retry_attempts must be >= 1, got {self.voucher_retry_attempts}"
            )
        if self.balance_tolerance <= 0:
            raise ValueError(
                f"balance_tolerance must be positive, got {self.balance_tolerance}"
            )


@dataclass(frozen=True)
class DefaultAccountDef:
    """One account of the default chart of accounts."""

    code: str
    name: str
    account_type: str  # asset, liability, equity, revenue, expense
    account_category: str
    account_sub_category: str | None = None
    description: str | None = None
