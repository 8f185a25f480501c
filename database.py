import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from config import settings

logger = logging.getLogger(__name__)

DEFAULT_ADMIN = {
    "userId": "admin001",
    "username": "admin",
    "password": "admin123",
    "email": "admin@library.com",
    "role": "Admin",
}


def create_tables(conn: sqlite3.Connection) -> None:
    """Create the books, users and borrow_records tables if they do not exist."""
    cursor = conn.cursor()
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS books (
            isbn TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            author TEXT NOT NULL,
            year INTEGER,
            category TEXT NOT NULL,
            isAvailable INTEGER DEFAULT 1
        )
    """)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS users (
            userId TEXT PRIMARY KEY,
            username TEXT UNIQUE NOT NULL,
            password TEXT NOT NULL,
            email TEXT NOT NULL,
            role TEXT NOT NULL
        )
    """)
    # Rows here outlive the book or user they point at: deletes do not cascade.
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS borrow_records (
            recordId TEXT PRIMARY KEY,
            userId TEXT NOT NULL,
            bookIsbn TEXT NOT NULL,
            borrowDate TEXT NOT NULL,
            returnDate TEXT,
            isReturned INTEGER DEFAULT 0
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_borrow_records_user_book ON borrow_records(userId, bookIsbn)")


def seed_default_admin(conn: sqlite3.Connection) -> bool:
    """Insert the default administrator unless a row with its id exists. Returns True if inserted."""
    cursor = conn.execute(
        "INSERT OR IGNORE INTO users (userId, username, password, email, role) VALUES (?, ?, ?, ?, ?)",
        (
            DEFAULT_ADMIN["userId"],
            DEFAULT_ADMIN["username"],
            DEFAULT_ADMIN["password"],
            DEFAULT_ADMIN["email"],
            DEFAULT_ADMIN["role"],
        ),
    )
    return cursor.rowcount > 0


class Database:
    """Owns the single SQLite connection shared by every ``Library`` built on it.

    The connection is opened lazily by ``acquire_connection``; the schema and
    the default administrator are put in place each time a connection is
    opened. ``release`` closes it and may be called any number of times.

    Work on the connection is serialised by a re-entrant lock: a transaction
    holds it from the first statement to the commit or rollback, so requests
    served from different threads never interleave inside one another's
    transaction.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or settings.db_file
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def is_open(self) -> bool:
        if self._conn is None:
            return False
        try:
            self._conn.execute("SELECT 1")
        except sqlite3.ProgrammingError:
            # Closed behind our back.
            self._conn = None
            return False
        return True

    def acquire_connection(self) -> sqlite3.Connection:
        """Return the shared connection, opening (or reopening) it if needed."""
        with self._lock:
            if not self.is_open:
                conn = sqlite3.connect(self.db_file, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._conn = conn
                self.initialize()
                logger.info(f"Database connection opened: {self.db_file}")
            return self._conn

    def initialize(self) -> None:
        """Create the schema and seed the default administrator. Idempotent."""
        with self._lock:
            if self._conn is None:
                # Opening a connection runs this method.
                self.acquire_connection()
                return
            conn = self._conn
            try:
                create_tables(conn)
                if seed_default_admin(conn):
                    logger.info(f"Default administrator '{DEFAULT_ADMIN['username']}' created")
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield the connection; commit if the block succeeds, roll back if it raises."""
        with self._lock:
            conn = self.acquire_connection()
            try:
                yield conn
                conn.commit()
            except BaseException:
                conn.rollback()
                raise

    def release(self) -> None:
        """Close the connection if it is open. Never raises."""
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
            logger.info(f"Database connection closed: {self.db_file}")
        except sqlite3.Error as e:
            logger.warning(f"Error closing database connection: {e}")
