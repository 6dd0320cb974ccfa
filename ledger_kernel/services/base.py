"""
Shared constructor for the ledger's write services.

Responsibility:
    Hand every service the unit-of-work session it writes through and the
    clock it stamps postings, closings and audit entries with.

Architecture position:
    Kernel > Services.  Orchestrators in ``ledger_services`` (or tests)
    open the session with ``session_scope``; services only flush into it.

Invariants enforced:
    - A service never commits or rolls back.  Everything one ledger action
      writes (a posting and its audit entry, a lock and every transaction
      it freezes) lands or vanishes together with the caller's unit of
      work.
"""

from abc import ABC

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Holds ``session`` and ``clock`` for a concrete service.

    Non-goals:
        - Read models.  Query-only access lives in
          ``ledger_kernel.selectors``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock if clock is not None else SystemClock()
