"""
AuditService -- append-only audit log of overrides, blocks and period actions.

Responsibility:
    Writes ``AuditLogEntry`` rows for the events the ledger must be able to
    justify later: a user proceeding past warnings, a refused action, and
    period lock/unlock.  Provides read access for review screens and tests.

Architecture position:
    Kernel > Services -- imperative shell, called by ValidationGate and
    PeriodService.

Invariants enforced:
    - Append-only: there is no update or delete path.
    - ``created_at`` comes from the injected clock.
    - ``rule_codes`` is stored in the order given (rule evaluation order).

Failure modes:
    - ValueError for an unknown entry type.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select

from ledger_kernel.domain.rules import EntityType, RuleResult
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit import AuditEntryType, AuditLogEntry
from ledger_kernel.services.base import BaseService

logger = get_logger("services.audit")


@dataclass(frozen=True)
class AuditRecord:
    """Read-only view of one audit entry."""

    entry_id: str
    company_id: str
    entry_type: AuditEntryType
    rule_codes: tuple[str, ...]
    entity_type: str
    entity_id: str | None
    actor_id: str
    created_at: datetime
    notes: str | None = None
    ref: dict[str, Any] = field(default_factory=dict)


def _to_record(row: AuditLogEntry) -> AuditRecord:
    return AuditRecord(
        entry_id=str(row.id),
        company_id=row.company_id,
        entry_type=AuditEntryType(row.entry_type),
        rule_codes=tuple(row.rule_codes or ()),
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        actor_id=row.actor_id,
        created_at=row.created_at,
        notes=row.notes,
        ref=dict(row.ref or {}),
    )


class AuditService(BaseService):
    """
    Service for writing and reading audit entries.

    Contract:
        Every write produces exactly one row and flushes it.

    Non-goals:
        - Does NOT call ``session.commit()``; the entry commits or rolls
          back together with the action it documents.
    """

    def log_entry(
        self,
        company_id: str,
        entry_type: AuditEntryType | str,
        rule_codes: Sequence[str],
        entity_type: EntityType | str,
        entity_id: str | None,
        ref: dict[str, Any] | None,
        actor_id: str,
        notes: str | None = None,
    ) -> AuditRecord:
        """Append one audit entry."""
        entry_type = AuditEntryType(entry_type)
        entity_type = EntityType(entity_type).value

        row = AuditLogEntry(
            company_id=company_id,
            entry_type=entry_type.value,
            rule_codes=list(rule_codes),
            entity_type=entity_type,
            entity_id=entity_id,
            ref={k: v for k, v in (ref or {}).items() if v is not None},
            actor_id=actor_id,
            notes=notes,
            created_at=self.clock.now(),
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "audit_entry_written",
            extra={
                "entry_type": entry_type.value,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "rule_codes": list(rule_codes),
                "actor_id": actor_id,
            },
        )
        return _to_record(row)

    def record_block(
        self,
        company_id: str,
        entity_type: EntityType | str,
        entity_id: str | None,
        result: RuleResult,
        actor_id: str,
        ref: dict[str, Any] | None = None,
    ) -> AuditRecord:
        """Record that an action was refused by BLOCK rule hits."""
        return self.log_entry(
            company_id=company_id,
            entry_type=AuditEntryType.VALIDATION_BLOCK,
            rule_codes=result.block_codes,
            entity_type=entity_type,
            entity_id=entity_id,
            ref=ref,
            actor_id=actor_id,
        )

    def list_entries(
        self,
        company_id: str,
        entry_type: AuditEntryType | str | None = None,
        entity_id: str | None = None,
    ) -> list[AuditRecord]:
        """Entries for a company ordered by creation time, optionally filtered."""
        stmt = select(AuditLogEntry).where(AuditLogEntry.company_id == company_id)
        if entry_type is not None:
            stmt = stmt.where(AuditLogEntry.entry_type == AuditEntryType(entry_type).value)
        if entity_id is not None:
            stmt = stmt.where(AuditLogEntry.entity_id == entity_id)
        stmt = stmt.order_by(AuditLogEntry.created_at)
        return [_to_record(row) for row in self.session.scalars(stmt)]
