import logging
import sqlite3
from contextlib import contextmanager
from datetime import date
from typing import Callable, Iterator, List, Optional

from book import Book
from borrow_record import BorrowRecord, new_record_id
from database import Database
from errors import ConflictError, StorageError
from factories import create_book, create_user, parse_role
from user import User

logger = logging.getLogger(__name__)

# Stands in for a NULL publication year left by older databases.
UNKNOWN_YEAR = 0


class Library:
    """Book and user bookkeeping plus the borrow/return workflow.

    Every public method either succeeds or reports failure through its return
    value (``False``, ``None`` or an empty list); storage errors are logged and
    never raised. ``InvalidArgumentError`` from the factories is the exception:
    it means a stored or supplied category/role is unknown and is raised as-is.
    """

    def __init__(self, database: Optional[Database] = None, clock: Optional[Callable[[], date]] = None) -> None:
        self.db = database if database is not None else Database()
        self._today = clock or date.today

    def close(self) -> None:
        self.db.release()

    @contextmanager
    def _session(self, action: str) -> Iterator[sqlite3.Connection]:
        """One transaction on the shared connection, with sqlite errors translated."""
        try:
            with self.db.transaction() as conn:
                yield conn
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"{action}: {e}") from e
        except sqlite3.Error as e:
            raise StorageError(f"{action}: {e}") from e

    # ------------------------- Books ------------------------- #
    @staticmethod
    def _book_from_row(row: sqlite3.Row) -> Book:
        year = row["year"] if row["year"] is not None else UNKNOWN_YEAR
        book = create_book(row["category"], row["isbn"], row["title"], row["author"], year)
        book.is_available = bool(row["isAvailable"])
        return book

    def add_book(self, book: Book) -> bool:
        """Insert a new book. Returns False if the ISBN is already taken."""
        try:
            with self._session("adding book") as conn:
                conn.execute(
                    "INSERT INTO books (isbn, title, author, year, category, isAvailable) VALUES (?, ?, ?, ?, ?, ?)",
                    (book.isbn, book.title, book.author, book.year, book.category, int(book.is_available)),
                )
        except ConflictError:
            logger.warning(f"Book with ISBN {book.isbn} already exists.")
            return False
        except StorageError as e:
            logger.error(f"Error adding book: {e}")
            return False
        logger.info(f"Book added: {book.isbn} - {book.title}")
        return True

    def get_all_books(self) -> List[Book]:
        try:
            with self._session("listing books") as conn:
                rows = conn.execute("SELECT * FROM books").fetchall()
        except (ConflictError, StorageError) as e:
            logger.error(f"Error getting books: {e}")
            return []
        return [self._book_from_row(row) for row in rows]

    def get_available_books(self) -> List[Book]:
        return [book for book in self.get_all_books() if book.is_available]

    def get_book_by_isbn(self, isbn: str) -> Optional[Book]:
        isbn = isbn.strip()
        try:
            with self._session("looking up book") as conn:
                row = conn.execute("SELECT * FROM books WHERE isbn = ?", (isbn,)).fetchone()
        except (ConflictError, StorageError) as e:
            logger.error(f"Error getting book: {e}")
            return None
        return self._book_from_row(row) if row else None

    def search_books(self, query: str) -> List[Book]:
        """Case-insensitive substring match on title, author or ISBN."""
        pattern = f"%{query.strip()}%"
        try:
            with self._session("searching books") as conn:
                rows = conn.execute(
                    "SELECT * FROM books WHERE title LIKE ? OR author LIKE ? OR isbn LIKE ? ORDER BY title",
                    (pattern, pattern, pattern),
                ).fetchall()
        except (ConflictError, StorageError) as e:
            logger.error(f"Error searching books: {e}")
            return []
        return [self._book_from_row(row) for row in rows]

    def update_book(self, book: Book) -> bool:
        """Overwrite every column of an existing book. False if the ISBN is unknown."""
        try:
            with self._session("updating book") as conn:
                cursor = conn.execute(
                    "UPDATE books SET title = ?, author = ?, year = ?, category = ?, isAvailable = ? WHERE isbn = ?",
                    (book.title, book.author, book.year, book.category, int(book.is_available), book.isbn),
                )
                updated = cursor.rowcount > 0
        except (ConflictError, StorageError) as e:
            logger.error(f"Error updating book: {e}")
            return False
        if not updated:
            logger.warning(f"Book with ISBN {book.isbn} not found; nothing updated.")
            return False
        logger.info(f"Book updated: {book.isbn}")
        return True

    def delete_book(self, isbn: str) -> bool:
        """Remove a book. Borrow records that reference it are left in place."""
        isbn = isbn.strip()
        try:
            with self._session("deleting book") as conn:
                deleted = conn.execute("DELETE FROM books WHERE isbn = ?", (isbn,)).rowcount > 0
        except (ConflictError, StorageError) as e:
            logger.error(f"Error deleting book: {e}")
            return False
        if deleted:
            logger.info(f"Book deleted: {isbn}")
        return deleted

    # ------------------------- Users ------------------------- #
    @staticmethod
    def _user_from_row(row: sqlite3.Row) -> User:
        return create_user(row["role"], row["userId"], row["username"], row["password"], row["email"])

    def add_user(self, user: User) -> bool:
        """Insert a new user. False if the user id or the username is taken."""
        try:
            with self._session("adding user") as conn:
                conn.execute(
                    "INSERT INTO users (userId, username, password, email, role) VALUES (?, ?, ?, ?, ?)",
                    (user.user_id, user.username, user.password, user.email, user.role),
                )
        except ConflictError:
            logger.warning(f"User {user.user_id} or username '{user.username}' already exists.")
            return False
        except StorageError as e:
            logger.error(f"Error adding user: {e}")
            return False
        logger.info(f"User added: {user.user_id} - {user.username}")
        return True

    def get_all_users(self) -> List[User]:
        try:
            with self._session("listing users") as conn:
                rows = conn.execute("SELECT * FROM users").fetchall()
        except (ConflictError, StorageError) as e:
            logger.error(f"Error getting users: {e}")
            return []
        return [self._user_from_row(row) for row in rows]

    def _get_user(self, column: str, value: str) -> Optional[User]:
        try:
            with self._session("looking up user") as conn:
                row = conn.execute(f"SELECT * FROM users WHERE {column} = ?", (value,)).fetchone()
        except (ConflictError, StorageError) as e:
            logger.error(f"Error getting user: {e}")
            return None
        return self._user_from_row(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._get_user("username", username)

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self._get_user("userId", user_id)

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user if the credentials match, else None. Passwords are compared as stored."""
        user = self.get_user_by_username(username)
        if user is None or user.password != password:
            logger.warning(f"Failed login attempt for username '{username}'")
            return None
        logger.info(f"User logged in: {user.username}")
        return user

    def update_user(self, user: User) -> bool:
        """Rewrite username, password, email and role label of an existing user.

        The user id is the lookup key and cannot change; neither can the role
        variant. Returns False for an unknown id, a role change or a username
        that belongs to someone else.
        """
        try:
            with self._session("updating user") as conn:
                row = conn.execute("SELECT role FROM users WHERE userId = ?", (user.user_id,)).fetchone()
                if row is None:
                    logger.warning(f"User {user.user_id} not found; nothing updated.")
                    return False
                if parse_role(row["role"]) is not user.kind:
                    logger.warning(f"Refusing to change role of user {user.user_id} to {user.role}")
                    return False
                conn.execute(
                    "UPDATE users SET username = ?, password = ?, email = ?, role = ? WHERE userId = ?",
                    (user.username, user.password, user.email, user.role, user.user_id),
                )
        except ConflictError:
            logger.warning(f"Username '{user.username}' already exists.")
            return False
        except StorageError as e:
            logger.error(f"Error updating user: {e}")
            return False
        logger.info(f"User updated: {user.user_id}")
        return True

    def delete_user(self, user_id: str) -> bool:
        try:
            with self._session("deleting user") as conn:
                deleted = conn.execute("DELETE FROM users WHERE userId = ?", (user_id,)).rowcount > 0
        except (ConflictError, StorageError) as e:
            logger.error(f"Error deleting user: {e}")
            return False
        if deleted:
            logger.info(f"User deleted: {user_id}")
        return deleted

    # ------------------------- Borrowing ------------------------- #
    @staticmethod
    def _find_active_record(conn: sqlite3.Connection, user_id: str, book_isbn: str) -> Optional[sqlite3.Row]:
        # Earliest borrow wins if older data holds more than one active record for the pair.
        return conn.execute(
            """
            SELECT * FROM borrow_records
            WHERE userId = ? AND bookIsbn = ? AND isReturned = 0
            ORDER BY borrowDate ASC, recordId ASC
            LIMIT 1
            """,
            (user_id, book_isbn),
        ).fetchone()

    def borrow_book(self, user_id: str, book_isbn: str) -> bool:
        """Lend an available book to a user.

        The new record and the availability flip are written in one
        transaction, so a book is never left unavailable without a record.
        """
        book_isbn = book_isbn.strip()
        try:
            with self._session("borrowing book") as conn:
                row = conn.execute("SELECT isAvailable FROM books WHERE isbn = ?", (book_isbn,)).fetchone()
                if row is None or not row["isAvailable"]:
                    logger.warning(f"Book not available for borrowing: {book_isbn}")
                    return False
                if self._find_active_record(conn, user_id, book_isbn) is not None:
                    logger.warning(f"User {user_id} already has an active borrow of {book_isbn}")
                    return False
                conn.execute(
                    "INSERT INTO borrow_records (recordId, userId, bookIsbn, borrowDate, isReturned) VALUES (?, ?, ?, ?, 0)",
                    (new_record_id(), user_id, book_isbn, self._today().isoformat()),
                )
                flipped = conn.execute(
                    "UPDATE books SET isAvailable = 0 WHERE isbn = ? AND isAvailable = 1", (book_isbn,)
                ).rowcount
                if flipped != 1:
                    raise ConflictError(f"book {book_isbn} changed while borrowing")
        except ConflictError as e:
            logger.warning(f"Borrow refused: {e}")
            return False
        except StorageError as e:
            logger.error(f"Error borrowing book: {e}")
            return False
        logger.info(f"Book borrowed: {book_isbn} by user: {user_id}")
        return True

    def return_book(self, user_id: str, book_isbn: str) -> bool:
        """Close the user's active borrow of a book and make the book available again."""
        book_isbn = book_isbn.strip()
        try:
            with self._session("returning book") as conn:
                record = self._find_active_record(conn, user_id, book_isbn)
                if record is None:
                    logger.warning(f"No active borrow of {book_isbn} by user: {user_id}")
                    return False
                conn.execute(
                    "UPDATE borrow_records SET returnDate = ?, isReturned = 1 WHERE recordId = ?",
                    (self._today().isoformat(), record["recordId"]),
                )
                conn.execute("UPDATE books SET isAvailable = 1 WHERE isbn = ?", (book_isbn,))
        except (ConflictError, StorageError) as e:
            logger.error(f"Error returning book: {e}")
            return False
        logger.info(f"Book returned: {book_isbn} by user: {user_id}")
        return True

    def _get_records(self, where: str = "", params: tuple = ()) -> List[BorrowRecord]:
        try:
            with self._session("listing borrow records") as conn:
                rows = conn.execute(f"SELECT * FROM borrow_records {where}", params).fetchall()
        except (ConflictError, StorageError) as e:
            logger.error(f"Error getting borrow records: {e}")
            return []
        return [BorrowRecord.from_row(row) for row in rows]

    def get_all_borrow_records(self) -> List[BorrowRecord]:
        return self._get_records()

    def get_borrow_records_for_user(self, user_id: str) -> List[BorrowRecord]:
        return self._get_records("WHERE userId = ? ORDER BY borrowDate, recordId", (user_id,))

    def get_active_borrow_records(self) -> List[BorrowRecord]:
        return self._get_records("WHERE isReturned = 0 ORDER BY borrowDate, recordId")
