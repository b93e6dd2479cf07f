"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain settings and the default chart of
    accounts at runtime: ``get_active_settings()`` and
    ``get_default_chart()``.  YAML loading lives in ``loader``.

Architecture position:
    Configuration.  Sits beside ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from
    ``ledger_config``; ``ledger_services`` hands parsed values to kernel
    services as plain arguments.

Precedence (lowest to highest):
    1. Packaged ``defaults/ledger.yaml``
    2. Optional override file passed as ``path``
    3. Environment: LEDGER_DATABASE_URL, LEDGER_LOG_LEVEL, LEDGER_DB_ECHO
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_default_chart, load_yaml_file, parse_settings
from ledger_config.schema import DefaultAccountDef, LedgerSettings

__all__ = [
    "DefaultAccountDef",
    "LedgerSettings",
    "get_active_settings",
    "get_default_chart",
]

_logger = logging.getLogger("ledger_kernel.config")

_DEFAULTS_DIR = Path(__file__).parent / "defaults"

_ENV_OVERRIDES = {
    "LEDGER_DATABASE_URL": "database_url",
    "LEDGER_LOG_LEVEL": "log_level",
    "LEDGER_DB_ECHO": "echo",
}


def get_active_settings(path: Path | str | None = None) -> LedgerSettings:
    """Resolve settings from packaged defaults, an optional file and the environment."""
    data = load_yaml_file(_DEFAULTS_DIR / "ledger.yaml")
    if path is not None:
        data.update(load_yaml_file(Path(path)))

    overridden = []
    for env_name, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data[key] = value
            overridden.append(env_name)

    settings = parse_settings(data)
    _logger.info(
        "ledger_settings_loaded",
        extra={
            "source": str(path) if path else "defaults",
            "env_overrides": overridden,
            "voucher_retry_attempts": settings.voucher_retry_attempts,
        },
    )
    return settings


def get_default_chart(path: Path | str | None = None) -> tuple[DefaultAccountDef, ...]:
    """Return the default chart of accounts (packaged unless ``path`` is given)."""
    chart_path = Path(path) if path else _DEFAULTS_DIR / "chart_of_accounts.yaml"
    return load_default_chart(chart_path)
