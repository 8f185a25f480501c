import sqlite3

import pytest

from database import DEFAULT_ADMIN, Database


def _tables(conn):
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row["name"] for row in rows}


def test_schema_and_default_admin_created_on_first_use(db):
    conn = db.acquire_connection()

    assert {"books", "users", "borrow_records"} <= _tables(conn)
    admin = conn.execute("SELECT * FROM users WHERE userId = ?", ("admin001",)).fetchone()
    assert dict(admin) == DEFAULT_ADMIN


def test_seeding_is_idempotent(tmp_path):
    path = str(tmp_path / "seed.db")
    with Database(path) as first:
        first.acquire_connection()
        first.initialize()
    with Database(path) as second:
        conn = second.acquire_connection()
        count = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
    assert count == 1


def test_seeding_keeps_existing_admin_row(tmp_path):
    path = str(tmp_path / "seed.db")
    with Database(path) as first:
        conn = first.acquire_connection()
        conn.execute("UPDATE users SET password = 'changed' WHERE userId = 'admin001'")
        conn.commit()
    with Database(path) as second:
        row = second.acquire_connection().execute(
            "SELECT password FROM users WHERE userId = 'admin001'"
        ).fetchone()
    assert row["password"] == "changed"


def test_connection_is_shared_and_reopened_after_close(db):
    conn = db.acquire_connection()
    assert db.acquire_connection() is conn

    conn.close()
    reopened = db.acquire_connection()

    assert reopened is not conn
    assert reopened.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 1


def test_release_is_safe_to_repeat(db):
    db.acquire_connection()
    db.release()
    db.release()
    assert not db.is_open


def test_release_without_connection():
    Database(":memory:").release()


def test_transaction_rolls_back_on_error(db):
    with pytest.raises(sqlite3.IntegrityError):
        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO books (isbn, title, author, year, category) VALUES ('1', 'T', 'A', 2000, 'Management')"
            )
            conn.execute("INSERT INTO users (userId, username, password, email, role) "
                         "VALUES ('x', 'admin', 'p', 'e', 'Admin')")

    conn = db.acquire_connection()
    assert conn.execute("SELECT COUNT(*) FROM books").fetchone()[0] == 0


def test_unreachable_store_raises_sqlite_error(tmp_path):
    database = Database(str(tmp_path / "missing" / "dir" / "library.db"))
    with pytest.raises(sqlite3.OperationalError):
        database.acquire_connection()
