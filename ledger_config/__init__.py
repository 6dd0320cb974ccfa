"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the runtime way to obtain the configuration set through
    ``get_active_config()``: chart of accounts, system templates and rule
    thresholds.  Environment-driven runtime settings live in
    ``ledger_config.settings``.

Architecture position:
    Configuration -- YAML-driven, validated at load time.
    Sits above ``ledger_kernel.domain`` and ``ledger_engines``; the kernel
    services receive templates and thresholds as constructor arguments and
    never import this package.

Invariants enforced:
    - A configuration set whose templates fail integrity checks never loads.
    - Same YAML files always produce the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the set directory or one of its files is missing.
    - ``ValueError`` / ``TemplateIntegrityError`` -- invalid set content.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying bookings to the configuration that governed them.
"""

from __future__ import annotations

import os
from pathlib import Path

from ledger_config.loader import LedgerConfiguration, compute_checksum, load_configuration
from ledger_config.settings import LedgerSettings
from ledger_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_SET_DIR = Path(__file__).parent / "sets" / "default"

CONFIG_DIR_ENV = "LEDGER_CONFIG_DIR"


def get_active_config(set_dir: Path | str | None = None) -> LedgerConfiguration:
    """
    Load the active configuration set.

    Resolution order: ``set_dir`` argument, ``LEDGER_CONFIG_DIR``, then the
    bundled default set.
    """
    resolved = Path(set_dir or os.environ.get(CONFIG_DIR_ENV) or DEFAULT_SET_DIR)
    if not resolved.is_dir():
        raise FileNotFoundError(f"Configuration set directory not found: {resolved}")

    config = load_configuration(resolved)
    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "account_count": len(config.accounts),
            "template_count": len(config.templates),
        },
    )
    return config


__all__ = [
    "DEFAULT_SET_DIR",
    "LedgerConfiguration",
    "LedgerSettings",
    "compute_checksum",
    "get_active_config",
]
