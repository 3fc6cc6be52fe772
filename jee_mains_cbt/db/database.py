"""
db/database.py

Engine and session factory for the attempt and question set tables.

SQLite transactions are opened with BEGIN IMMEDIATE, so writers queue on the
database lock for at most `timeout` seconds; past that the store reports
StoreUnavailable. Use a file database: every thread gets its own connection.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from config import DATABASE_URL, STORE_TIMEOUT
from jee_mains_cbt.db import records  # noqa: F401  (registers the tables on Base)
from jee_mains_cbt.db.base import Base
from jee_mains_cbt.errors import StoreUnavailable

logger = logging.getLogger(__name__)


def _begin_immediate(engine) -> None:
    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # hand transaction control to SQLAlchemy
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    def __init__(self, url: str = DATABASE_URL, timeout: float = STORE_TIMEOUT):
        self.url = url
        self.timeout = timeout
        if url.startswith("sqlite"):
            self.engine = create_engine(
                url,
                connect_args={"timeout": timeout, "check_same_thread": False},
            )
            _begin_immediate(self.engine)
        else:
            self.engine = create_engine(url, pool_timeout=timeout, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Database ready at {self.engine.url!r}")

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        One unit of work.

        Commits when the block exits cleanly and rolls back on any exception.
        Lock or connection failures surface as StoreUnavailable.
        """
        try:
            with self.SessionLocal() as session, session.begin():
                yield session
        except (OperationalError, PoolTimeoutError) as e:
            logger.warning(f"Database unavailable: {e}")
            raise StoreUnavailable("Store did not respond, retry later") from e
