"""
ValidationGate -- enforces the block / warn / info policy of a RuleResult.

Responsibility:
    Turns a ``RuleResult`` into a decision at the service boundary:
    any BLOCK refuses the action; WARN hits refuse unless the caller
    supplies an override acknowledging every warned rule, in which case
    exactly one OVERRIDE_WARNING audit entry is written; INFO never
    refuses.

Architecture position:
    Kernel > Services -- called by TransactionService.post and
    PeriodService.lock after the rule engine has evaluated the entity.

Invariants enforced:
    - Proceeding past a WARN-only result always produces exactly one audit
      entry whose ``rule_codes`` equal the warned codes (evaluation order).
    - A result with no warnings never writes an override entry, even when
      an override is supplied.

Failure modes:
    - ValidationBlocked: at least one BLOCK hit.
    - ValidationWarned: WARN hits and no override, or an override that
      does not acknowledge every warned code.
"""

from dataclasses import dataclass
from typing import Any

from ledger_kernel.domain.rules import EntityType, RuleResult
from ledger_kernel.exceptions import ValidationBlocked, ValidationWarned
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit import AuditEntryType
from ledger_kernel.services.audit_service import AuditRecord, AuditService

logger = get_logger("services.validation_gate")


@dataclass(frozen=True)
class WarningOverride:
    """
    A user's explicit acknowledgement of warning rule hits.

    ``rule_codes`` must include every warned code of the result it is
    applied to.
    """

    rule_codes: tuple[str, ...]
    actor_id: str
    justification: str | None = None

    def covers(self, warning_codes: tuple[str, ...]) -> bool:
        return set(warning_codes) <= set(self.rule_codes)


class ValidationGate:
    """
    Applies the severity policy and records overrides.

    Contract:
        ``enforce`` returns the override audit record when one was written,
        otherwise None; it raises when the action must not proceed.

    Non-goals:
        - Does NOT evaluate rules (RuleEngine does).
        - Does NOT record VALIDATION_BLOCK entries; callers that want the
          refusal on record use ``AuditService.record_block``.
    """

    def __init__(self, audit_service: AuditService):
        self._audit = audit_service

    def enforce(
        self,
        company_id: str,
        entity_type: EntityType,
        result: RuleResult,
        override: WarningOverride | None = None,
        entity_id: str | None = None,
        ref: dict[str, Any] | None = None,
    ) -> AuditRecord | None:
        entity_type = EntityType(entity_type)

        if result.blocks:
            logger.info(
                "validation_blocked",
                extra={
                    "entity_type": entity_type.value,
                    "entity_id": entity_id,
                    "block_codes": list(result.block_codes),
                },
            )
            raise ValidationBlocked(entity_type.value, result)

        if not result.warnings:
            return None

        if override is None or not override.covers(result.warning_codes):
            logger.info(
                "validation_warned",
                extra={
                    "entity_type": entity_type.value,
                    "entity_id": entity_id,
                    "warning_codes": list(result.warning_codes),
                },
            )
            raise ValidationWarned(entity_type.value, result)

        return self._audit.log_entry(
            company_id=company_id,
            entry_type=AuditEntryType.OVERRIDE_WARNING,
            rule_codes=result.warning_codes,
            entity_type=entity_type,
            entity_id=entity_id,
            ref=ref,
            actor_id=override.actor_id,
            notes=override.justification,
        )
