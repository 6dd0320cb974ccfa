"""
Module: ledger_kernel.models.audit
Responsibility: Append-only audit log of overrides, blocks and period
    lock/unlock actions.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are only ever inserted (AuditService has no update or delete).
    - A warning override produces exactly one OVERRIDE_WARNING row whose
      ``rule_codes`` equal the warned codes, in evaluation order.

Audit relevance:
    This table is the audit trail.  ``ref`` carries the transaction,
    document and period the entry refers to.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UTCDateTime


class AuditEntryType(str, Enum):
    OVERRIDE_WARNING = "OVERRIDE_WARNING"
    VALIDATION_BLOCK = "VALIDATION_BLOCK"
    PERIOD_LOCK = "PERIOD_LOCK"
    PERIOD_UNLOCK = "PERIOD_UNLOCK"


class AuditLogEntry(Base):
    """One audit log record."""

    __tablename__ = "audit_log"

    __table_args__ = (
        Index("idx_audit_company_type", "company_id", "entry_type"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )

    company_id: Mapped[str] = mapped_column(String(64), nullable=False)

    entry_type: Mapped[str] = mapped_column(String(30), nullable=False)

    rule_codes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)

    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    ref: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry {self.entry_type} {self.entity_type}/{self.entity_id}>"
