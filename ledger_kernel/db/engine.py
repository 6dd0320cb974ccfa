"""
Module: ledger_kernel.db.engine
Responsibility: Build engines and session factories for a ledger database
    and run units of work against them.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (create_tables/drop_tables import the model modules to register them).

Invariants enforced:
    - No module-level engine.  Every caller (bootstrap, a test, a worker
      thread) holds its own engine and factory, so two ledgers in one
      process never share connections.
    - PostgreSQL runs at READ COMMITTED; period lock and sequence
      allocation take explicit row locks (SELECT ... FOR UPDATE).
    - SQLite opens every transaction with BEGIN IMMEDIATE, so concurrent
      writers queue on the database lock instead of failing when a read
      transaction upgrades.  pysqlite's own transaction handling is off.
    - Sessions keep attribute values after commit; snapshots built from
      ORM rows stay readable once the unit of work has ended.

Failure modes:
    - OperationalError ("database is locked") on SQLite once the busy
      timeout elapses; the orchestrators' retry policy treats it as a
      lock conflict.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.logging_config import get_logger

logger = get_logger("db.engine")

SQLITE_BUSY_TIMEOUT = 30.0


def _begin_immediate(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _take_write_lock(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    sqlite_timeout: float = SQLITE_BUSY_TIMEOUT,
) -> Engine:
    """
    Engine for ``database_url``.

    SQLite files get BEGIN IMMEDIATE and a busy timeout and may be used
    from several threads; anything else gets a pre-pinged READ COMMITTED
    pool.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": sqlite_timeout, "check_same_thread": False},
        )
        _begin_immediate(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )
    logger.info("engine_built", extra={"dialect": engine.dialect.name})
    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    One unit of work: commit on normal exit, roll back and re-raise on
    error, close either way.

    Usage:
        with session_scope(factory) as session:
            PeriodService(session, rule_engine, audit, clock).lock(...)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("unit_of_work_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _ledger_metadata():
    import ledger_kernel.models  # noqa: F401
    import ledger_kernel.services.sequence_service  # noqa: F401
    from ledger_kernel.db.base import Base

    return Base.metadata


def create_tables(engine: Engine) -> None:
    """Create every ledger table that does not exist yet."""
    _ledger_metadata().create_all(engine)


def drop_tables(engine: Engine) -> None:
    _ledger_metadata().drop_all(engine)
