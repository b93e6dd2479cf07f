"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the frozen dataclasses of
``ledger_config.schema``.  Callers go through ``ledger_config`` public
functions; this module is the only place that touches YAML.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from ledger_config.schema import DefaultAccountDef, LedgerSettings

_VALID_ACCOUNT_TYPES = frozenset(
    {"asset", "liability", "equity", "revenue", "expense"}
)

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_bool(value: Any) -> bool:
    """Parse a YAML or environment boolean."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_STRINGS


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a Decimal from a YAML scalar; floats go through str()."""
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name}: cannot parse decimal from {value!r}") from exc


def parse_settings(data: Mapping[str, Any]) -> LedgerSettings:
    """
    Parse ``LedgerSettings`` from a dict.

    Preconditions:
        - ``data`` contains ``database_url``.
    Raises:
        KeyError: if ``database_url`` is missing.
        ValueError: on invalid values.
    """
    defaults = LedgerSettings(database_url=data["database_url"])
    return LedgerSettings(
        database_url=data["database_url"],
        echo=parse_bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
        pool_timeout=int(data.get("pool_timeout", defaults.pool_timeout)),
        voucher_retry_attempts=int(
            data.get("voucher_retry_attempts", defaults.voucher_retry_attempts)
        ),
        balance_tolerance=parse_decimal(
            data.get("balance_tolerance", defaults.balance_tolerance),
            "balance_tolerance",
        ),
        money_places=int(data.get("money_places", defaults.money_places)),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
    )


def parse_default_account(data: Mapping[str, Any]) -> DefaultAccountDef:
    """
    Parse one ``DefaultAccountDef``.

    Raises:
        KeyError: if code, name, account_type or account_category is missing.
        ValueError: if account_type is not a known type.
    """
    account_type = str(data["account_type"]).lower()
    if account_type not in _VALID_ACCOUNT_TYPES:
        raise ValueError(
            f"Account {data['code']}: unknown account_type {data['account_type']!r}"
        )
    return DefaultAccountDef(
        code=str(data["code"]),
        name=data["name"],
        account_type=account_type,
        account_category=data["account_category"],
        account_sub_category=data.get("account_sub_category"),
        description=data.get("description"),
    )


def load_default_chart(path: Path) -> tuple[DefaultAccountDef, ...]:
    """Load a chart-of-accounts YAML file (top-level ``accounts`` list)."""
    data = load_yaml_file(path)
    accounts = tuple(parse_default_account(item) for item in data.get("accounts", []))
    codes = [a.code for a in accounts]
    duplicates = sorted({c for c in codes if codes.count(c) > 1})
    if duplicates:
        raise ValueError(f"Duplicate account codes in {path}: {duplicates}")
    return accounts
