"""
Module: ledger_kernel.models.template
Responsibility: ORM persistence for company-defined (custom) templates.
    System templates live in the configuration set and are never stored.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (company_id, code) is unique.
    - ``lines`` holds the serialized template lines; TemplateService
      integrity-checks them against the chart before every save.
"""

from typing import Any

from sqlalchemy import JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class TemplateRecord(TrackedBase):
    """Stored custom template."""

    __tablename__ = "templates"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_template_company_code"),
    )

    company_id: Mapped[str] = mapped_column(String(64), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    number_prefix: Mapped[str] = mapped_column(String(10), nullable=False, default="TRN")

    applies_to: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    lines: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<TemplateRecord {self.company_id}/{self.code}>"
