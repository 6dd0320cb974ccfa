"""
Module: ledger_kernel.db.base
Responsibility: Declarative base for the ledger's ORM models: string-stored
    UUID keys, a cents-precision money column and creation metadata.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel; model files import from here.  MUST NOT import from models/,
    services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Every row has a uuid4 primary key.
    - Money columns hold exactly two decimal places; values are quantized
      half away from zero on the way in, so nothing finer than a cent is
      ever persisted.  NEVER use float for money.
    - Timestamps are timezone-aware and read back as UTC, SQLite included.
    - Constraint and index names follow one naming convention, so
      migrations on PostgreSQL and SQLite agree.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, Integer, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

_CENT = Decimal("0.01")


class UUIDString(TypeDecorator):
    """UUID stored as String(36); accepts UUID objects or their string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, PyUUID) else PyUUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Money(TypeDecorator):
    """Numeric(18, 2) that quantizes to cents before binding."""

    impl = Numeric(18, 2, asdecimal=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


class UTCDateTime(TypeDecorator):
    """
    DateTime(timezone=True) that reads back aware UTC on every backend.

    SQLite keeps no offset, so values are converted to UTC before binding
    and naive results are tagged as UTC.  Naive input is refused.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime {value!r}; ledger timestamps must be timezone-aware")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all ledger models.

    Guarantees:
        - ``id`` is a uuid4 stored as String(36).
        - ``Mapped[Decimal]`` columns are Money, ``Mapped[datetime]``
          columns are timezone-aware.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Money(),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Rows that remember who created them and when.

    ``created_by`` is the opaque actor id of the calling context; the
    ledger keeps no user table.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)


UUID = PyUUID
