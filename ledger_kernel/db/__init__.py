"""Database layer - declarative base, engines and units of work."""

from ledger_kernel.db.base import UUID, Base, Money, TrackedBase, UTCDateTime, UUIDString
from ledger_kernel.db.engine import (
    build_engine,
    build_session_factory,
    create_tables,
    drop_tables,
    session_scope,
)

__all__ = [
    "Base",
    "Money",
    "TrackedBase",
    "UTCDateTime",
    "UUID",
    "UUIDString",
    "build_engine",
    "build_session_factory",
    "create_tables",
    "drop_tables",
    "session_scope",
]
