"""
Period lock under contention.

Two actors lock the same period at once, and a booking races a lock.
Whatever the interleaving, the period ends LOCKED exactly once and no
POSTED transaction is left behind in a LOCKED period.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.dialects import postgresql

from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.ledger import LineData, Side, TransactionStatus
from ledger_kernel.exceptions import Conflict, PeriodNotOpen, ValidationBlocked
from ledger_kernel.models.audit import AuditEntryType
from ledger_kernel.models.period import PeriodStatus
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.audit_service import AuditService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.validation_gate import WarningOverride
from tests.conftest import ACTOR_ID, COMPANY_ID, JANUARY

PERIOD = "2025-01"
PAYABLES_OVERRIDE = WarningOverride(("CLOSING_OPEN_PAYABLES",), ACTOR_ID)


def run_together(*calls):
    """Start every call at the same moment; return (outcome, error) pairs."""
    barrier = threading.Barrier(len(calls))

    def run(call):
        barrier.wait()
        try:
            return call(), None
        except (Conflict, PeriodNotOpen, ValidationBlocked) as exc:
            return None, exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(run, calls))


def test_concurrent_locks_lock_once(period_close, session_factory, clock):
    results = run_together(
        lambda: period_close.lock(COMPANY_ID, PERIOD, "user-1"),
        lambda: period_close.lock(COMPANY_ID, PERIOD, "user-2"),
    )

    successes = [outcome for outcome, error in results if error is None]
    failures = [error for outcome, error in results if error is not None]
    assert len(successes) == 1
    assert len(failures) == 1
    failure = failures[0]
    if isinstance(failure, ValidationBlocked):
        assert failure.block_codes == ("CLOSING_ALREADY_LOCKED",)
    else:
        assert isinstance(failure, Conflict)

    with session_scope(session_factory) as session:
        status = PeriodService(session, clock).get_status(COMPANY_ID, PERIOD)
        locks = AuditService(session).list_entries(COMPANY_ID, entry_type=AuditEntryType.PERIOD_LOCK)
    assert status == PeriodStatus.LOCKED
    assert len(locks) == 1


def test_booking_racing_a_lock(bookings, period_close, session_factory):
    def book():
        return bookings.book_and_post(
            company_id=COMPANY_ID,
            template_code="NAJOM_AUTA",
            amount=Decimal("300.00"),
            transaction_date=JANUARY,
            description="Car rental",
            actor_id=ACTOR_ID,
            partner_id="p-cars",
            partner_name="Cars s.r.o.",
        )

    def lock():
        return period_close.lock(COMPANY_ID, PERIOD, ACTOR_ID, override=PAYABLES_OVERRIDE)

    (booked, booking_error), (outcome, lock_error) = run_together(book, lock)

    assert lock_error is None
    if booking_error is None:
        assert outcome.transaction_count == 1
    else:
        assert isinstance(booking_error, PeriodNotOpen)
        assert outcome.transaction_count == 0

    with session_scope(session_factory) as session:
        stored = TransactionSelector(session).list_transactions(COMPANY_ID, period=PERIOD)
    assert all(t.status == TransactionStatus.LOCKED for t in stored)


def test_booking_rereads_a_period_locked_since_it_was_loaded(session, periods, transactions, period_close):
    assert periods.get_or_create(COMPANY_ID, PERIOD).status == PeriodStatus.OPEN
    session.commit()

    period_close.lock(COMPANY_ID, PERIOD, "user-2")

    with pytest.raises(PeriodNotOpen) as exc_info:
        transactions.create_manual(
            company_id=COMPANY_ID,
            transaction_date=JANUARY,
            description="Late rent",
            lines=[
                LineData("518", Side.DEBIT, Decimal("50.00")),
                LineData("321", Side.CREDIT, Decimal("50.00"), partner_id="p-landlord"),
            ],
            actor_id=ACTOR_ID,
        )
    assert exc_info.value.status == "locked"


def test_bookings_hold_the_period_row(session, transactions):
    period_selects = []

    @event.listens_for(session, "do_orm_execute")
    def capture(state):
        if state.is_select:
            sql = str(state.statement.compile(dialect=postgresql.dialect()))
            if "accounting_periods" in sql:
                period_selects.append(sql)

    transactions.create_manual(
        company_id=COMPANY_ID,
        transaction_date=JANUARY,
        description="Office rent",
        lines=[
            LineData("518", Side.DEBIT, Decimal("50.00")),
            LineData("321", Side.CREDIT, Decimal("50.00"), partner_id="p-landlord"),
        ],
        actor_id=ACTOR_ID,
    )

    assert period_selects
    assert all("FOR UPDATE" in sql for sql in period_selects)
