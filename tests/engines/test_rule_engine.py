"""Tests for the rule engine: severity buckets per entity type."""

from datetime import date
from decimal import Decimal

import pytest

from ledger_engines.rule_engine import RuleEngine, RuleThresholds
from ledger_kernel.domain.ledger import LineData, Side, validate_balance
from ledger_kernel.domain.rules import (
    BankPairingCandidate,
    DocumentCandidate,
    EntityType,
    ExtractedField,
    PayrollCandidate,
    PeriodClosingCandidate,
    RuleContext,
    Severity,
    TransactionCandidate,
)

CTX = RuleContext(company_id="company-1", period="2025-01", user_id="user-1")
DAY = date(2025, 1, 10)


def _lines(*specs):
    return tuple(
        LineData(account, side, Decimal(amount), partner_id=partner, line_key=f"line-{i}")
        for i, (account, side, amount, partner) in enumerate(specs, start=1)
    )


def _transaction(lines, description="INV 2025010 - IT services", **kwargs):
    return TransactionCandidate(description=description, transaction_date=DAY, lines=lines, **kwargs)


@pytest.fixture
def engine():
    return RuleEngine()


class TestTransactionRules:

    def test_clean_invoice_has_no_hits(self, engine):
        candidate = _transaction(
            _lines(("311", Side.DEBIT, "120", "p1"), ("602", Side.CREDIT, "120", None)),
            template_id="FA_VYDANA_SLUZBY",
        )
        result = engine.validate(entity_type=EntityType.TRANSACTION, entity=candidate, context=CTX)
        assert result.is_valid
        assert result.all_hits == ()

    def test_blocks_come_in_catalogue_order(self, engine):
        candidate = _transaction(
            _lines(("518", Side.DEBIT, "0", None)),
            period_status="locked",
        )
        result = engine.validate(entity_type=EntityType.TRANSACTION, entity=candidate, context=CTX)
        assert result.block_codes == ("TRX_PERIOD_LOCKED", "TRX_NO_CREDIT_LINE", "TRX_NON_POSITIVE_AMOUNT")
        assert not result.is_valid
        assert result.blocks[2].field_path == "lines.line-1.amount"

    def test_unbalanced(self, engine):
        candidate = _transaction(_lines(("518", Side.DEBIT, "100", None), ("321", Side.CREDIT, "99.98", "s1")))
        result = engine.validate(entity_type=EntityType.TRANSACTION, entity=candidate, context=CTX)
        assert result.block_codes == ("TRX_UNBALANCED",)

    def test_one_cent_difference_blocks(self, engine):
        candidate = _transaction(_lines(("518", Side.DEBIT, "100.01", None), ("321", Side.CREDIT, "100.00", "s1")))
        result = engine.validate(entity_type=EntityType.TRANSACTION, entity=candidate, context=CTX)

        assert not validate_balance(candidate)
        assert result.block_codes == ("TRX_UNBALANCED",)

    def test_warnings_and_info(self, engine):
        candidate = _transaction(
            _lines(("221", Side.DEBIT, "50", None), ("311", Side.CREDIT, "50", None)),
            description="x",
        )
        result = engine.validate(entity_type=EntityType.TRANSACTION, entity=candidate, context=CTX)
        assert result.is_valid
        assert result.warning_codes == ("TRX_NO_DESCRIPTION", "TRX_PARTNER_MISSING")
        assert [hit.code for hit in result.infos] == ["TRX_SUGGEST_TEMPLATE"]
        assert all(hit.severity == Severity.WARN for hit in result.warnings)

    def test_payment_template_without_bank_line(self, engine):
        candidate = _transaction(
            _lines(("321", Side.DEBIT, "50", "s1"), ("518", Side.CREDIT, "50", None)),
            template_id="UHRADA_DODAVATEL",
        )
        result = engine.validate(entity_type=EntityType.TRANSACTION, entity=candidate, context=CTX)
        assert result.warning_codes == ("TRX_PAYMENT_NO_BANK",)

    def test_description_threshold_is_configurable(self):
        engine = RuleEngine(RuleThresholds(min_description_length=10))
        candidate = _transaction(
            _lines(("518", Side.DEBIT, "10", None), ("221", Side.CREDIT, "10", None)),
            description="Fuel",
        )
        result = engine.validate(entity_type=EntityType.TRANSACTION, entity=candidate, context=CTX)
        assert "TRX_NO_DESCRIPTION" in result.warning_codes


class TestDocumentRules:

    def test_missing_amount_and_date_block(self, engine):
        result = engine.validate(entity_type=EntityType.DOCUMENT, entity=DocumentCandidate(), context=CTX)
        assert result.block_codes == ("DOC_NO_AMOUNT", "DOC_NO_DATE")
        assert result.warning_codes == ("DOC_NO_NUMBER",)
        assert result.infos == ()

    @pytest.mark.parametrize(
        "confidence, block, warn",
        [(0.2, ("DOC_CONFIDENCE_CRITICAL",), ()), (0.5, (), ("DOC_LOW_CONFIDENCE_AMOUNT",)), (0.9, (), ())],
    )
    def test_amount_confidence_bands(self, engine, confidence, block, warn):
        candidate = DocumentCandidate(
            amount=Decimal("120"),
            issue_date=DAY,
            doc_number="2025010",
            extracted_fields={"amount": ExtractedField("120", confidence)},
        )
        result = engine.validate(entity_type=EntityType.DOCUMENT, entity=candidate, context=CTX)
        assert result.block_codes == block
        assert result.warning_codes == warn
        assert [hit.code for hit in result.infos] == ["DOC_SUGGEST_TEMPLATE"]

    def test_partner_without_ico_and_uncertain_supplier(self, engine):
        candidate = DocumentCandidate(
            amount=Decimal("10"),
            issue_date=DAY,
            doc_number="1",
            partner_name="Acme s.r.o.",
            extracted_fields={"supplier": ExtractedField("Acme", 0.4)},
        )
        result = engine.validate(entity_type=EntityType.DOCUMENT, entity=candidate, context=CTX)
        assert result.warning_codes == ("DOC_LOW_CONFIDENCE_SUPPLIER", "DOC_SUPPLIER_NO_ICO")


class TestBankPairingRules:

    def _candidate(self, movement, remaining, partial=False, partner="p1", note=None):
        return BankPairingCandidate(
            movement_amount=Decimal(movement),
            open_item_amount=Decimal("120"),
            open_item_remaining=Decimal(remaining),
            is_partial_payment=partial,
            partner_id=partner,
            note=note,
        )

    def test_overpayment_blocks(self, engine):
        result = engine.validate(
            entity_type=EntityType.BANK_PAIRING, entity=self._candidate("130", "120"), context=CTX
        )
        assert result.block_codes == ("BANK_OVERPAYMENT",)

    def test_overpayment_tolerates_a_cent(self, engine):
        result = engine.validate(
            entity_type=EntityType.BANK_PAIRING, entity=self._candidate("120.01", "120"), context=CTX
        )
        assert result.is_valid

    def test_partial_without_note_and_partner_warn(self, engine):
        result = engine.validate(
            entity_type=EntityType.BANK_PAIRING,
            entity=self._candidate("50", "120", partial=True, partner=None),
            context=CTX,
        )
        assert result.warning_codes == ("BANK_PARTIAL_NO_NOTE", "BANK_NO_PARTNER")

    def test_nothing_left_is_info(self, engine):
        result = engine.validate(
            entity_type=EntityType.BANK_PAIRING, entity=self._candidate("0", "0"), context=CTX
        )
        assert [hit.code for hit in result.infos] == ["BANK_NO_OPEN_ITEM"]


class TestPeriodClosingRules:

    def test_drafts_block(self, engine):
        candidate = PeriodClosingCandidate(
            period="2025-01", draft_transaction_count=1, open_receivable_count=0, open_payable_count=0
        )
        result = engine.validate(entity_type=EntityType.PERIOD_CLOSING, entity=candidate, context=CTX)
        assert result.block_codes == ("CLOSING_DRAFT_TRANSACTIONS",)
        assert [hit.code for hit in result.infos] == ["CLOSING_LOCK_EFFECT"]

    def test_everything_at_once(self, engine):
        candidate = PeriodClosingCandidate(
            period="2025-01",
            draft_transaction_count=2,
            open_receivable_count=1,
            open_payable_count=3,
            inbox_pending_count=4,
            is_already_locked=True,
        )
        result = engine.validate(entity_type=EntityType.PERIOD_CLOSING, entity=candidate, context=CTX)
        assert result.block_codes == (
            "CLOSING_ALREADY_LOCKED",
            "CLOSING_INBOX_NOT_EMPTY",
            "CLOSING_DRAFT_TRANSACTIONS",
        )
        assert result.warning_codes == ("CLOSING_OPEN_RECEIVABLES", "CLOSING_OPEN_PAYABLES")


class TestPayrollRules:

    def test_duplicate_and_invalid_salary_block(self, engine):
        candidate = PayrollCandidate(period="2025-01", gross_salary=Decimal("0"), existing_run_for_period=True)
        result = engine.validate(entity_type=EntityType.PAYROLL, entity=candidate, context=CTX)
        assert result.block_codes == ("PAYROLL_DUPLICATE", "PAYROLL_INVALID_SALARY")

    def test_missing_settings_warn_and_auto_info(self, engine):
        candidate = PayrollCandidate(
            period="2025-01",
            gross_salary=Decimal("1500"),
            has_payroll_settings=False,
            create_payment_transactions=True,
        )
        result = engine.validate(entity_type=EntityType.PAYROLL, entity=candidate, context=CTX)
        assert result.warning_codes == ("PAYROLL_NO_SETTINGS",)
        assert [hit.code for hit in result.infos] == ["PAYROLL_AUTO_TRANSACTIONS"]


class TestDispatch:

    def test_string_entity_type_accepted(self, engine):
        result = engine.validate(entity_type="document", entity=DocumentCandidate(amount=Decimal("1")), context=CTX)
        assert "DOC_NO_DATE" in result.block_codes

    def test_unknown_entity_type(self, engine):
        with pytest.raises(ValueError):
            engine.validate(entity_type="invoice", entity=DocumentCandidate(), context=CTX)

    def test_wrong_snapshot_type(self, engine):
        with pytest.raises(TypeError):
            engine.validate(entity_type=EntityType.PAYROLL, entity=DocumentCandidate(), context=CTX)
