"""Datastore handle for SQLite (local) and PostgreSQL (cloud).

A single Datastore is created per process, opened at start-up and closed at
shutdown. Connections are acquired per unit of work through
``Datastore.connection()`` and are always released, even on error.
"""

import logging
import sqlite3
import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import PoolError, ThreadedConnectionPool

from talentmatch.config import DATABASE_URL, DB_PATH, DB_POOL_MAX, DB_POOL_MIN
from talentmatch.errors import TransientStoreContentionError

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = ("connection already closed", "connection is closed", "server closed the connection", "database is locked")


class DatabaseConnection:
    """Wrapper for database connections that provides a consistent interface."""

    def __init__(self, conn: Any, is_postgres: bool = False):
        self.conn = conn
        self.is_postgres = is_postgres
        self._cursor = None

    def cursor(self, dictionary: bool = False) -> Any:
        """Get a cursor for executing database operations.

        Args:
            dictionary: If True, rows are returned as dict-like objects
                (RealDictCursor on PostgreSQL, sqlite3.Row on SQLite).

        Returns:
            Database cursor object for executing queries and fetching results.
        """
        if self.is_postgres:
            self._cursor = self.conn.cursor(cursor_factory=RealDictCursor if dictionary else None)
        else:
            self._cursor = self.conn.cursor()
        return self._cursor

    def commit(self) -> None:
        """Commit the transaction."""
        self.conn.commit()

    def rollback(self) -> None:
        """Roll back the current transaction."""
        self.conn.rollback()

    def close_cursor(self) -> None:
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None

    @property
    def placeholder(self) -> str:
        """Return the parameter placeholder for this database."""
        return "%s" if self.is_postgres else "?"


def is_transient_store_error(error: BaseException) -> bool:
    """Return True for pool exhaustion and closed-connection errors."""
    if isinstance(error, (PoolError, psycopg2.InterfaceError, TransientStoreContentionError)):
        return True
    if isinstance(error, (psycopg2.OperationalError, sqlite3.OperationalError)):
        message = str(error).lower()
        return any(marker in message for marker in _TRANSIENT_MARKERS)
    return False


class Datastore:
    """Relational datastore with its own lifecycle.

    Uses a bounded psycopg2 connection pool when a PostgreSQL URL is set,
    otherwise one SQLite connection per acquisition.
    """

    def __init__(
        self,
        database_url: str | None = None,
        sqlite_path: Path = DB_PATH,
        pool_min: int = DB_POOL_MIN,
        pool_max: int = DB_POOL_MAX,
    ):
        self.database_url = database_url
        self.sqlite_path = Path(sqlite_path)
        self.pool_min = pool_min
        self.pool_max = pool_max
        self._pool: ThreadedConnectionPool | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls) -> "Datastore":
        return cls(database_url=DATABASE_URL)

    @property
    def is_postgres(self) -> bool:
        return bool(self.database_url)

    def open(self) -> "Datastore":
        """Create the connection pool (PostgreSQL) or the data directory (SQLite)."""
        with self._lock:
            if self.is_postgres:
                if self._pool is None:
                    self._pool = ThreadedConnectionPool(self.pool_min, self.pool_max, self.database_url)
                    logger.info(f"Opened PostgreSQL pool ({self.pool_min}-{self.pool_max} connections)")
            else:
                self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        return self

    def close(self) -> None:
        """Close all pooled connections."""
        with self._lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None
                logger.info("Closed PostgreSQL pool")

    def __enter__(self) -> "Datastore":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def connection(self) -> Generator[DatabaseConnection, None, None]:
        """Acquire a connection for one unit of work.

        Yields:
            DatabaseConnection wrapper with consistent interface.

        Raises:
            TransientStoreContentionError: If the pool is exhausted or the
                connection was closed underneath us.
        """
        if self.is_postgres:
            if self._pool is None:
                self.open()
            try:
                conn = self._pool.getconn()
            except PoolError as e:
                raise TransientStoreContentionError(f"Connection pool exhausted: {e}") from e
            db = DatabaseConnection(conn, is_postgres=True)
        else:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.sqlite_path, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
            conn.row_factory = sqlite3.Row
            db = DatabaseConnection(conn, is_postgres=False)

        try:
            yield db
        except Exception as e:
            if is_transient_store_error(e) and not isinstance(e, TransientStoreContentionError):
                raise TransientStoreContentionError(f"Store contention: {e}") from e
            raise
        finally:
            self._release(db)

    def _release(self, db: DatabaseConnection) -> None:
        try:
            db.close_cursor()
        except Exception as e:
            logger.debug(f"Ignoring cursor close error: {e}")

        if not db.is_postgres:
            db.conn.close()
            return

        broken = bool(db.conn.closed)
        if not broken:
            try:
                db.conn.rollback()
            except psycopg2.Error:
                broken = True
        if self._pool is not None:
            self._pool.putconn(db.conn, close=broken)


def init_tables(store: Datastore) -> None:
    """Initialize database tables.

    Creates all required tables if they don't exist.
    Uses appropriate syntax for PostgreSQL or SQLite.
    """
    with store.connection() as db:
        if db.is_postgres:
            _init_postgres_tables(db)
        else:
            _init_sqlite_tables(db)
        db.commit()


def _init_postgres_tables(db: DatabaseConnection) -> None:
    """Create PostgreSQL tables."""
    cursor = db.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS vacancies (
            id SERIAL PRIMARY KEY,
            title TEXT,
            description TEXT,
            client TEXT,
            location TEXT,
            duration TEXT,
            is_remote BOOLEAN,
            start_date DATE,
            budget TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS vacancy_requirements (
            id SERIAL PRIMARY KEY,
            vacancy_id INTEGER NOT NULL REFERENCES vacancies(id) ON DELETE CASCADE,
            requirement_type TEXT NOT NULL,
            requirement_value TEXT NOT NULL,
            is_required BOOLEAN NOT NULL DEFAULT TRUE,
            priority INTEGER NOT NULL DEFAULT 2
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS match_results (
            assignment_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            score NUMERIC(5, 4),
            overall_score NUMERIC(5, 2),
            matched_requirements TEXT,
            missing_requirements TEXT,
            reasoning TEXT,
            requirement_breakdown TEXT,
            last_evaluated_at TIMESTAMPTZ DEFAULT NOW(),
            evaluation_version INTEGER NOT NULL,
            PRIMARY KEY (assignment_id, user_id)
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_vacancy_requirements_vacancy
        ON vacancy_requirements(vacancy_id)
    """)


def _init_sqlite_tables(db: DatabaseConnection) -> None:
    """Create SQLite tables (for local development/testing)."""
    cursor = db.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS vacancies (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT,
            description TEXT,
            client TEXT,
            location TEXT,
            duration TEXT,
            is_remote INTEGER,
            start_date TEXT,
            budget TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS vacancy_requirements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            vacancy_id INTEGER NOT NULL REFERENCES vacancies(id) ON DELETE CASCADE,
            requirement_type TEXT NOT NULL,
            requirement_value TEXT NOT NULL,
            is_required INTEGER NOT NULL DEFAULT 1,
            priority INTEGER NOT NULL DEFAULT 2
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS match_results (
            assignment_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            score REAL,
            overall_score REAL,
            matched_requirements TEXT,
            missing_requirements TEXT,
            reasoning TEXT,
            requirement_breakdown TEXT,
            last_evaluated_at TEXT,
            evaluation_version INTEGER NOT NULL,
            PRIMARY KEY (assignment_id, user_id)
        )
    """)
