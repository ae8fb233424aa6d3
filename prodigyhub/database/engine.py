"""
prodigyhub.database.engine — Database Connection
=================================================

SQLAlchemy + psycopg2 is **synchronous**.  FastAPI runs plain ``def``
routes on its worker threadpool.  No async engine, no asyncpg.

Every multi-row invariant (capacity, one completion, XP totals) is enforced
by conditional ``UPDATE`` statements inside a single transaction, so the
engine must give each writer its own connection.  On SQLite (local dev and
tests) transactions are opened with ``BEGIN IMMEDIATE`` so concurrent
writers queue on the database lock instead of failing on upgrade.

Usage::

    from prodigyhub.database.engine import create_db_engine, init_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …
"""

from __future__ import annotations

import logging
import os

from sqlalchemy import Engine, create_engine, event

from prodigyhub.database.models import Base

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine`.

    *url* defaults to the ``DATABASE_URL`` environment variable.  For
    PostgreSQL the pool is sized for a small-to-medium community:

    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        enable_sqlite_immediate_transactions(engine)
    else:
        engine = create_engine(
            url,
            echo=False,           # Set True for SQL debugging
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,   # Reconnect stale connections automatically
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Database engine created → %s", engine.url.host or engine.url.database)
    return engine


def enable_sqlite_immediate_transactions(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite defers ``BEGIN`` and starts transactions as readers; two
    readers upgrading to writers at once deadlock and one gets ``database
    is locked`` immediately, bypassing the busy timeout.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`prodigyhub.database.models`.

    Safe to call on every startup: ``CREATE TABLE IF NOT EXISTS`` under
    the hood.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments where
        Alembic may not have run.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

