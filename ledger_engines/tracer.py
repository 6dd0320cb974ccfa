"""
ledger_engines.tracer -- LEDGER_ENGINE_TRACE records for engine calls.

Responsibility:
    ``@traced_engine`` wraps a pure engine entry point and logs one
    structured record per call: which engine ran, at which version, a
    fingerprint of the inputs that determine its output, how long it took
    and whether it raised.

Architecture position:
    Engines -- support for the pure calculation layer.  Emits a log record
    and nothing else; engines stay free of I/O and state.

Invariants enforced:
    - The fingerprint is computed from the *bound* call arguments, so the
      same inputs give the same fingerprint whether they were passed
      positionally or by keyword.
    - Decimals are normalized before hashing ("10" and "10.00" are the
      same amount); mappings hash independently of key order.
    - A failing call is still traced (outcome="error") and the exception
      propagates unchanged.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from dataclasses import fields, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from ledger_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

FINGERPRINT_LENGTH = 16


def _canonical(value: Any) -> str:
    if value is None:
        return "~"
    if isinstance(value, Enum):
        return f"{type(value).__name__}.{value.value}"
    if isinstance(value, Decimal):
        return f"d:{value.normalize()}" if value else "d:0"
    if isinstance(value, bool):
        return "b:1" if value else "b:0"
    if isinstance(value, (int, float)):
        return f"n:{value}"
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        pairs = sorted((str(k), _canonical(v)) for k, v in value.items())
        return "{" + ";".join(f"{k}={v}" for k, v in pairs) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ";".join(_canonical(v) for v in value) + "]"
    if isinstance(value, (set, frozenset)):
        return "<" + ";".join(sorted(_canonical(v) for v in value)) + ">"
    if is_dataclass(value) and not isinstance(value, type):
        body = {f.name: getattr(value, f.name) for f in fields(value)}
        return type(value).__name__ + _canonical(body)
    return str(value)


def compute_input_fingerprint(arguments: Mapping[str, Any], names: tuple[str, ...]) -> str:
    """SHA-256 over the named arguments, truncated to FINGERPRINT_LENGTH hex chars."""
    canonical = "|".join(f"{name}:{_canonical(arguments.get(name))}" for name in names)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Decorate an engine entry point.

    ``fingerprint_fields`` names the parameters of the wrapped function
    that go into the input fingerprint; unknown names raise TypeError at
    decoration time.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)
        missing = [name for name in fingerprint_fields if name not in signature.parameters]
        if missing:
            raise TypeError(f"{func.__qualname__} has no parameter(s) {', '.join(missing)}")

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(bound.arguments, fingerprint_fields)

            started = time.perf_counter()
            outcome = "error"
            try:
                result = func(*args, **kwargs)
                outcome = "ok"
                return result
            finally:
                _logger.info(
                    "LEDGER_ENGINE_TRACE",
                    extra={
                        "trace_type": "LEDGER_ENGINE_TRACE",
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fingerprint,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                        "outcome": outcome,
                        "function": func.__qualname__,
                    },
                )

        return wrapper

    return decorator
