"""
ledger_engines.bank_statement -- Normalize bank API transaction records.

Responsibility:
    Convert transaction records returned by the bank collaborator (PSD2 /
    Berlin Group account-information JSON, already fetched by the caller)
    into ``BankMovement`` values: absolute amount plus direction, booking
    date, counterparty, and the Slovak payment symbols (variable, specific,
    constant) parsed from the remittance reference.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Token exchange and HTTP
    are external collaborators; this module only reads dicts.

Invariants enforced:
    - ``BankMovement.amount`` is non-negative; a negative signed amount
      becomes a DEBIT, zero or positive a CREDIT.
    - Symbols come from explicit fields when present, otherwise from the
      reference text (``/VS123/SS456/KS0308``, case-insensitive).

Failure modes:
    - ValueError if the record has neither bookingDate nor valueDate.
    - decimal.InvalidOperation for a non-numeric amount.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any

from ledger_engines.matching import BankMovement, Direction
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.bank_statement")

_VS_RE = re.compile(r"/VS(\d+)", re.IGNORECASE)
_SS_RE = re.compile(r"/SS(\d+)", re.IGNORECASE)
_KS_RE = re.compile(r"/KS(\d+)", re.IGNORECASE)


def parse_symbols(reference: str | None) -> tuple[str | None, str | None, str | None]:
    """Extract (variable, specific, constant) symbols from a reference string."""
    text = reference or ""
    found = []
    for pattern in (_VS_RE, _SS_RE, _KS_RE):
        match = pattern.search(text)
        found.append(match.group(1) if match else None)
    return found[0], found[1], found[2]


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def parse_bank_movement(record: Mapping[str, Any]) -> BankMovement:
    """
    Convert one bank API transaction record into a BankMovement.

    Raises:
        ValueError: If the record has no booking or value date.
    """
    raw_amount = record.get("amount") or {}
    signed = Decimal(str(raw_amount.get("amount") or "0"))
    currency = raw_amount.get("currency") or "EUR"

    booked = record.get("bookingDate") or record.get("valueDate")
    if not booked:
        raise ValueError(f"Bank record {record.get('transactionId')!r} has no date")

    reference = (
        record.get("remittanceInformationUnstructured")
        or record.get("reference")
        or ""
    )
    vs, ss, ks = parse_symbols(reference)

    counterparty_account = (record.get("creditorAccount") or {}).get("iban") or (
        record.get("debtorAccount") or {}
    ).get("iban")

    movement_date = _parse_date(booked)
    movement_id = (
        record.get("transactionId")
        or record.get("entryReference")
        or f"{movement_date.isoformat()}-{signed}"
    )

    return BankMovement(
        movement_date=movement_date,
        amount=abs(signed),
        direction=Direction.CREDIT if signed >= 0 else Direction.DEBIT,
        currency=currency,
        description=reference or record.get("additionalInformation") or "",
        counterparty_name=record.get("creditorName") or record.get("debtorName"),
        counterparty_account=counterparty_account,
        variable_symbol=record.get("variableSymbol") or vs,
        specific_symbol=record.get("specificSymbol") or ss,
        constant_symbol=record.get("constantSymbol") or ks,
        reference=reference or None,
        movement_id=str(movement_id),
    )


def parse_bank_movements(records: Iterable[Mapping[str, Any]]) -> list[BankMovement]:
    """Parse a batch; the order of the statement is preserved."""
    movements = [parse_bank_movement(record) for record in records]
    logger.debug("bank_movements_parsed", extra={"count": len(movements)})
    return movements
