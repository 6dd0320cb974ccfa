"""Read-side base: selectors query through the caller's session and return
frozen ledger snapshots, never ORM rows.  They do not add, flush or commit."""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    def __init__(self, session: Session):
        self.session = session
