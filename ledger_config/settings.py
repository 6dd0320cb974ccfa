"""
Runtime settings read from the environment.

``LEDGER_DATABASE_URL``         SQLAlchemy URL (default: local SQLite file).
``LEDGER_LOG_LEVEL``            Root level for the ``ledger_kernel`` logger.
``LEDGER_LOCK_RETRY_ATTEMPTS``  Attempts before a unit of work gives up
                                with Conflict.
``LEDGER_CONFIG_DIR``           Configuration set directory override.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DATABASE_URL = "sqlite:///ledger.db"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_RETRY_ATTEMPTS = 4

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LedgerSettings:
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = DEFAULT_LOG_LEVEL
    lock_retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    config_dir: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> LedgerSettings:
        """
        Build settings from environment variables.

        Raises:
            ValueError: Unknown log level, or a retry count that is not a
                positive integer.
        """
        env = os.environ if environ is None else environ

        log_level = env.get("LEDGER_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
        if log_level not in _LOG_LEVELS:
            raise ValueError(f"LEDGER_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got {log_level!r}")

        attempts = int(env.get("LEDGER_LOCK_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS))
        if attempts < 1:
            raise ValueError(f"LEDGER_LOCK_RETRY_ATTEMPTS must be >= 1, got {attempts}")

        config_dir = env.get("LEDGER_CONFIG_DIR")
        return cls(
            database_url=env.get("LEDGER_DATABASE_URL", DEFAULT_DATABASE_URL),
            log_level=log_level,
            lock_retry_attempts=attempts,
            config_dir=Path(config_dir) if config_dir else None,
        )
