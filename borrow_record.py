from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import date
from typing import Optional

RECORD_PREFIX = "BR"

_last_token = 0
_token_lock = threading.Lock()


def new_record_id() -> str:
    """Return ``BR`` followed by the current epoch time in milliseconds.

    Tokens never repeat within a process: a call landing on the same
    millisecond as the previous one gets the next integer.
    """
    global _last_token
    with _token_lock:
        token = int(time.time() * 1000)
        if token <= _last_token:
            token = _last_token + 1
        _last_token = token
    return f"{RECORD_PREFIX}{token}"


@dataclass
class BorrowRecord:
    """One borrow of one book by one user.

    A record starts Active (``is_returned`` False, no ``return_date``) and
    becomes Returned once; ``return_date`` is set exactly when ``is_returned``
    is True.
    """

    record_id: str
    user_id: str
    book_isbn: str
    borrow_date: date
    return_date: Optional[date] = None
    is_returned: bool = False

    @property
    def is_active(self) -> bool:
        return not self.is_returned

    def mark_returned(self, when: Optional[date] = None) -> None:
        if self.is_returned:
            raise ValueError(f"Borrow record {self.record_id} is already returned.")
        self.return_date = when or date.today()
        self.is_returned = True

    def __str__(self) -> str:
        return (
            f"RecordID: {self.record_id}, UserID: {self.user_id}, BookISBN: {self.book_isbn}, "
            f"BorrowDate: {self.borrow_date}, ReturnDate: {self.return_date}, Returned: {self.is_returned}"
        )

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "user_id": self.user_id,
            "book_isbn": self.book_isbn,
            "borrow_date": self.borrow_date.isoformat(),
            "return_date": self.return_date.isoformat() if self.return_date else None,
            "is_returned": self.is_returned,
        }

    @staticmethod
    def from_row(row) -> "BorrowRecord":
        """Build a record from a ``borrow_records`` row (``sqlite3.Row`` or mapping)."""
        return_date = row["returnDate"]
        return BorrowRecord(
            record_id=row["recordId"],
            user_id=row["userId"],
            book_isbn=row["bookIsbn"],
            borrow_date=date.fromisoformat(row["borrowDate"]),
            return_date=date.fromisoformat(return_date) if return_date else None,
            is_returned=bool(row["isReturned"]),
        )
