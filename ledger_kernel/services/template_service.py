"""
TemplateService -- system and custom accounting templates for a company.

Responsibility:
    Resolves a template code to a ``Template``: system templates come from
    the active configuration set and are read-only; custom templates are
    stored per company.  Every custom template is integrity-checked against
    the company's chart before it is saved.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by TransactionService.create_from_template.

Invariants enforced:
    - A system template code can never be shadowed, overwritten or deleted.
    - Only templates that pass ``check_template_integrity`` are stored.

Failure modes:
    - TemplateNotFound for an unknown code.
    - TemplateReadOnly when saving or deleting a system template code.
    - TemplateIntegrityError listing every problem in a custom template.
"""

from collections.abc import Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.templates import (
    Template,
    check_template_integrity,
    template_from_dict,
    template_line_to_dict,
)
from ledger_kernel.exceptions import TemplateNotFound, TemplateReadOnly
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.template import TemplateRecord
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.template")


def _record_to_template(record: TemplateRecord) -> Template:
    return template_from_dict(
        {
            "code": record.code,
            "name": record.name,
            "description": record.description,
            "number_prefix": record.number_prefix,
            "applies_to": record.applies_to,
            "lines": record.lines,
        }
    )


class TemplateService(BaseService):
    """
    Template lookup and custom template maintenance.

    Contract:
        ``system_templates`` is the read-only catalogue from configuration,
        keyed by template code.
    """

    def __init__(
        self,
        session: Session,
        system_templates: Mapping[str, Template] | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._system = dict(system_templates or {})

    def _get_record(self, company_id: str, code: str) -> TemplateRecord | None:
        return self.session.execute(
            select(TemplateRecord).where(
                TemplateRecord.company_id == company_id,
                TemplateRecord.code == code,
            )
        ).scalar_one_or_none()

    def get_template(self, company_id: str, code: str) -> Template:
        if code in self._system:
            return self._system[code]
        record = self._get_record(company_id, code)
        if record is None:
            raise TemplateNotFound(code)
        return _record_to_template(record)

    def list_templates(self, company_id: str) -> list[Template]:
        """System templates first (configuration order), then custom by code."""
        records = self.session.scalars(
            select(TemplateRecord)
            .where(TemplateRecord.company_id == company_id)
            .order_by(TemplateRecord.code)
        )
        return list(self._system.values()) + [_record_to_template(r) for r in records]

    def save_custom_template(self, company_id: str, template: Template, actor_id: str) -> Template:
        """
        Create or replace a custom template.

        Raises:
            TemplateReadOnly: If ``template.code`` is a system template.
            TemplateIntegrityError: If the template fails integrity checks.
        """
        if template.code in self._system:
            raise TemplateReadOnly(template.code)

        check_template_integrity(
            template, AccountService(self.session, self.clock).account_codes(company_id)
        )

        record = self._get_record(company_id, template.code)
        if record is None:
            record = TemplateRecord(company_id=company_id, code=template.code, created_by=actor_id)
            self.session.add(record)
        record.name = template.name
        record.description = template.description
        record.number_prefix = template.number_prefix
        record.applies_to = [value.value for value in template.applies_to]
        record.lines = [template_line_to_dict(line) for line in template.lines]
        self.session.flush()

        logger.info(
            "custom_template_saved",
            extra={"company_id": company_id, "template_code": template.code},
        )
        return _record_to_template(record)

    def delete_custom_template(self, company_id: str, code: str) -> None:
        if code in self._system:
            raise TemplateReadOnly(code)
        record = self._get_record(company_id, code)
        if record is None:
            raise TemplateNotFound(code)
        self.session.delete(record)
        self.session.flush()
