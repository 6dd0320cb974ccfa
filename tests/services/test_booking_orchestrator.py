"""
Tests for BookingOrchestrator workflows.

Every workflow commits in its own session, so the assertions read back
through a fresh ``session_scope`` rather than the ``session`` fixture.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_engines.matching import (
    BankMovement,
    Direction,
    EntryType,
    OpenEntry,
    PairingMatch,
)
from ledger_engines.payroll import PayrollConfig
from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.ledger import Side, TransactionStatus
from ledger_kernel.exceptions import ValidationBlocked, ValidationWarned
from ledger_kernel.models.audit import AuditEntryType
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.audit_service import AuditService
from ledger_kernel.services.validation_gate import WarningOverride
from tests.conftest import ACTOR_ID, COMPANY_ID, JANUARY

PAYDAY = date(2025, 1, 31)


def stored_transactions(session_factory, period="2025-01"):
    with session_scope(session_factory) as session:
        return TransactionSelector(session).list_transactions(COMPANY_ID, period=period)


def audit_entries(session_factory, entry_type=None):
    with session_scope(session_factory) as session:
        return AuditService(session).list_entries(COMPANY_ID, entry_type=entry_type)


def invoice_match(amount="120.00", partner_id="p-acme", entry_type=EntryType.INCOME):
    movement = BankMovement(
        movement_date=date(2025, 1, 20),
        amount=Decimal(amount),
        direction=Direction.CREDIT if entry_type == EntryType.INCOME else Direction.DEBIT,
        variable_symbol="2025010",
        counterparty_name="Acme s.r.o.",
        movement_id="m-1",
    )
    entry = OpenEntry(
        entry_id="e-1",
        entry_type=entry_type,
        amount=Decimal("120.00"),
        doc_number="2025010",
        variable_symbol="2025010",
        partner_id=partner_id,
        partner_name="Acme s.r.o." if partner_id else None,
    )
    return PairingMatch(movement, entry, 100, ("VS: 2025010",))


class TestTemplateBookings:

    def test_book_from_template_commits_a_draft(self, bookings, session_factory):
        booked = bookings.book_from_template(
            company_id=COMPANY_ID,
            template_code="FA_PRIJATA_SLUZBY",
            amount=Decimal("45.50"),
            transaction_date=JANUARY,
            description="Hosting January",
            actor_id=ACTOR_ID,
            partner_id="p-host",
            partner_name="Hosting a.s.",
        )

        stored = stored_transactions(session_factory)
        assert [t.number for t in stored] == [booked.number] == ["TRN-202501-0001"]
        assert stored[0].status == TransactionStatus.DRAFT

    def test_book_and_post(self, bookings, session_factory):
        posted = bookings.book_and_post(
            company_id=COMPANY_ID,
            template_code="FA_VYDANA_SLUZBY",
            amount=Decimal("120.00"),
            transaction_date=JANUARY,
            description="INV 2025010 - IT services",
            actor_id=ACTOR_ID,
            partner_id="p-acme",
            partner_name="Acme s.r.o.",
        )

        assert posted.status == TransactionStatus.POSTED
        assert stored_transactions(session_factory)[0].status == TransactionStatus.POSTED

    def test_refused_post_leaves_no_draft_and_no_gap(self, bookings, session_factory):
        with pytest.raises(ValidationWarned):
            bookings.book_and_post(
                company_id=COMPANY_ID,
                template_code="FA_VYDANA_SLUZBY",
                amount=Decimal("120.00"),
                transaction_date=JANUARY,
                description="Counter sale",
                actor_id=ACTOR_ID,
            )
        assert stored_transactions(session_factory) == []

        booked = bookings.book_from_template(
            company_id=COMPANY_ID,
            template_code="FA_VYDANA_SLUZBY",
            amount=Decimal("120.00"),
            transaction_date=JANUARY,
            description="Counter sale",
            actor_id=ACTOR_ID,
        )
        assert booked.number == "TRN-202501-0001"


class TestPayroll:

    def test_books_balanced_payroll_expense(self, bookings, session_factory):
        booking = bookings.book_payroll(
            COMPANY_ID, PAYDAY, Decimal("1500.00"), ACTOR_ID,
            employee_name="Jana Novakova", config=PayrollConfig(),
        )

        expense = booking.expense_transaction
        assert expense.template_id == "MZDA_NAKLAD"
        assert expense.description == "Payroll 2025-01 Jana Novakova"
        assert [(line.account_code, line.side, line.amount) for line in expense.lines] == [
            ("521", Side.DEBIT, Decimal("1500.00")),
            ("524", Side.DEBIT, Decimal("528.00")),
            ("331", Side.CREDIT, Decimal("1130.13")),
            ("336", Side.CREDIT, Decimal("729.00")),
            ("342", Side.CREDIT, Decimal("168.87")),
        ]
        assert expense.total_debit == expense.total_credit == Decimal("2028.00")
        assert booking.payment_transaction is None
        assert len(stored_transactions(session_factory)) == 1

    def test_payment_transaction_for_net_salary(self, bookings):
        booking = bookings.book_payroll(
            COMPANY_ID, PAYDAY, Decimal("1500.00"), ACTOR_ID,
            config=PayrollConfig(), create_payment=True,
        )

        payment = booking.payment_transaction
        assert payment.template_id == "VYPLATA_MZDY"
        assert payment.total_debit == Decimal("1130.13")
        assert [hit.code for hit in booking.result.infos] == ["PAYROLL_AUTO_TRANSACTIONS"]

    def test_duplicate_run_blocked_and_audited(self, bookings, session_factory):
        bookings.book_payroll(COMPANY_ID, PAYDAY, Decimal("1500.00"), ACTOR_ID, config=PayrollConfig())

        with pytest.raises(ValidationBlocked) as exc_info:
            bookings.book_payroll(COMPANY_ID, PAYDAY, Decimal("1600.00"), ACTOR_ID, config=PayrollConfig())

        assert exc_info.value.block_codes == ("PAYROLL_DUPLICATE",)
        assert len(stored_transactions(session_factory)) == 1
        blocks = audit_entries(session_factory, AuditEntryType.VALIDATION_BLOCK)
        assert len(blocks) == 1
        assert blocks[0].rule_codes == ("PAYROLL_DUPLICATE",)
        assert blocks[0].entity_id == "2025-01"

    def test_non_positive_salary_blocked(self, bookings, session_factory):
        with pytest.raises(ValidationBlocked) as exc_info:
            bookings.book_payroll(COMPANY_ID, PAYDAY, Decimal("0"), ACTOR_ID, config=PayrollConfig())

        assert exc_info.value.block_codes == ("PAYROLL_INVALID_SALARY",)
        assert stored_transactions(session_factory) == []

    def test_missing_settings_needs_override(self, bookings, session_factory):
        with pytest.raises(ValidationWarned) as exc_info:
            bookings.book_payroll(COMPANY_ID, PAYDAY, Decimal("1500.00"), ACTOR_ID)
        assert exc_info.value.warning_codes == ("PAYROLL_NO_SETTINGS",)
        assert stored_transactions(session_factory) == []

        booking = bookings.book_payroll(
            COMPANY_ID, PAYDAY, Decimal("1500.00"), ACTOR_ID,
            override=WarningOverride(("PAYROLL_NO_SETTINGS",), ACTOR_ID, "Default rates are fine"),
        )

        assert booking.override_entry.rule_codes == ("PAYROLL_NO_SETTINGS",)
        overrides = audit_entries(session_factory, AuditEntryType.OVERRIDE_WARNING)
        assert [entry.entry_id for entry in overrides] == [booking.override_entry.entry_id]


class TestAcceptPairing:

    def test_full_customer_payment(self, bookings):
        booking = bookings.accept_pairing(COMPANY_ID, invoice_match(), Decimal("120.00"), ACTOR_ID)

        transaction = booking.transaction
        assert not booking.is_partial_payment
        assert transaction.template_id == "UHRADA_ODBERATEL"
        assert transaction.transaction_date == date(2025, 1, 20)
        assert transaction.description == "Payment 2025010"
        assert transaction.document_id == "e-1"
        receivable = next(line for line in transaction.lines if line.account_code == "311")
        assert receivable.side == Side.CREDIT
        assert receivable.partner_id == "p-acme"

    def test_supplier_payment_uses_payable_template(self, bookings):
        booking = bookings.accept_pairing(
            COMPANY_ID, invoice_match(entry_type=EntryType.EXPENSE), Decimal("120.00"), ACTOR_ID
        )
        assert booking.transaction.template_id == "UHRADA_DODAVATEL"

    def test_overpayment_blocked_and_audited(self, bookings, session_factory):
        with pytest.raises(ValidationBlocked) as exc_info:
            bookings.accept_pairing(COMPANY_ID, invoice_match(), Decimal("50.00"), ACTOR_ID)

        assert exc_info.value.block_codes == ("BANK_OVERPAYMENT",)
        assert stored_transactions(session_factory) == []
        (entry,) = audit_entries(session_factory, AuditEntryType.VALIDATION_BLOCK)
        assert entry.entity_id == "e-1"
        assert entry.ref == {"movement_id": "m-1", "entry_id": "e-1"}

    def test_partial_payment_needs_note(self, bookings):
        with pytest.raises(ValidationWarned) as exc_info:
            bookings.accept_pairing(COMPANY_ID, invoice_match(amount="50.00"), Decimal("120.00"), ACTOR_ID)
        assert exc_info.value.warning_codes == ("BANK_PARTIAL_NO_NOTE",)

        booking = bookings.accept_pairing(
            COMPANY_ID, invoice_match(amount="50.00"), Decimal("120.00"), ACTOR_ID, note="First instalment"
        )

        assert booking.is_partial_payment
        assert booking.transaction.description == "First instalment"
        assert booking.transaction.total_debit == Decimal("50.00")

    def test_missing_partner_override(self, bookings, session_factory):
        override = WarningOverride(("BANK_NO_PARTNER",), ACTOR_ID)

        booking = bookings.accept_pairing(
            COMPANY_ID, invoice_match(partner_id=None), Decimal("120.00"), ACTOR_ID, override=override
        )

        assert booking.override_entry is not None
        (entry,) = audit_entries(session_factory, AuditEntryType.OVERRIDE_WARNING)
        assert entry.rule_codes == ("BANK_NO_PARTNER",)
