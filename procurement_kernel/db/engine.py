"""
Module: procurement_kernel.db.engine
Responsibility: Build the SQLAlchemy engine and session factory the
    workflow coordinator opens its per-operation sessions from, and create
    or drop the schema.
Architecture position: Kernel > DB.  MUST NOT import from services/,
    domain/ or outer layers (create_tables/drop_tables import models
    lazily).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED; every read-modify-write in the
      services takes a row lock (SELECT ... FOR UPDATE).
    - SQLite (tests, local use) has pysqlite's implicit BEGIN disabled and
      opens every transaction with BEGIN IMMEDIATE.  Two approvers racing
      on one material request therefore queue on the write lock instead
      of both reading the old flags.

Failure modes:
    - RuntimeError from get_engine/get_session_factory before
      init_engine_from_url().
    - OperationalError ("database is locked") on SQLite when a writer
      waits longer than SQLITE_BUSY_TIMEOUT_SECONDS.
"""

import atexit

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from procurement_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def _use_immediate_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # The "begin" listener below issues BEGIN itself.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the module-level engine and session factory.

    Sessions from the factory keep their attributes after commit
    (``expire_on_commit=False``) so the coordinator can build result DTOs
    once the transaction has ended.

    Args:
        database_url: ``postgresql+psycopg2://...`` or ``sqlite:///...``.
        echo: Log every SQL statement.
        pool_size: Connections kept in the pool.
        max_overflow: Extra connections allowed beyond ``pool_size``.
        pool_pre_ping: Test PostgreSQL connections before handing them out.
        pool_timeout: Seconds to wait for a free connection.
        pool_recycle: Seconds after which a PostgreSQL connection is replaced.
    """
    global _engine, _SessionFactory

    pool_options = {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
    }
    if database_url.startswith("sqlite"):
        dialect = "sqlite"
        _engine = create_engine(
            database_url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
            },
            **pool_options,
        )
        _use_immediate_transactions(_engine)
    else:
        dialect = "postgresql"
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_pre_ping=pool_pre_ping,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
            **pool_options,
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": dialect, "pool_size": pool_size, "max_overflow": max_overflow},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory handed to ``WorkflowCoordinator``; one session per operation."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def create_tables() -> None:
    from procurement_kernel.db.base import Base
    import procurement_kernel.models  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every procurement table (test teardown on PostgreSQL)."""
    from procurement_kernel.db.base import Base
    import procurement_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


atexit.register(reset_engine)
