"""Tests for TransactionSelector queries."""

import pytest

from ledger_kernel.domain.ledger import TransactionStatus
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from tests.conftest import ACTOR_ID, COMPANY_ID, FEBRUARY, OTHER_COMPANY_ID


@pytest.fixture
def selector(session):
    return TransactionSelector(session)


@pytest.fixture
def ledger(issue_invoice, transactions):
    """Two January invoices (one posted) and one February draft."""
    posted = issue_invoice()
    transactions.post(COMPANY_ID, posted.id, ACTOR_ID)
    draft = issue_invoice(amount="80.00")
    february = issue_invoice(transaction_date=FEBRUARY)
    return posted, draft, february


def test_get_and_get_by_number(selector, ledger):
    posted, _, _ = ledger

    assert selector.get(COMPANY_ID, posted.id).number == posted.number
    assert selector.get_by_number(COMPANY_ID, posted.number).id == posted.id
    assert selector.get_by_number(COMPANY_ID, "TRN-209901-0001") is None
    assert selector.get(OTHER_COMPANY_ID, posted.id) is None


def test_list_ordered_by_number(selector, ledger):
    numbers = [t.number for t in selector.list_transactions(COMPANY_ID)]
    assert numbers == ["TRN-202501-0001", "TRN-202501-0002", "TRN-202502-0001"]


def test_list_filters(selector, ledger):
    posted, draft, _ = ledger

    january = selector.list_transactions(COMPANY_ID, period="2025-01")
    drafts = selector.list_transactions(
        COMPANY_ID, period="2025-01", statuses=(TransactionStatus.DRAFT,)
    )

    assert [t.id for t in january] == [posted.id, draft.id]
    assert [t.id for t in drafts] == [draft.id]


def test_counts(selector, ledger):
    assert selector.count(COMPANY_ID, "2025-01", TransactionStatus.DRAFT) == 1
    assert selector.count(COMPANY_ID, "2025-01", TransactionStatus.POSTED) == 1
    assert selector.status_counts(COMPANY_ID, "2025-01") == {
        TransactionStatus.DRAFT: 1,
        TransactionStatus.POSTED: 1,
        TransactionStatus.LOCKED: 0,
    }
    assert selector.status_counts(COMPANY_ID, "2025-03") == {
        TransactionStatus.DRAFT: 0,
        TransactionStatus.POSTED: 0,
        TransactionStatus.LOCKED: 0,
    }
