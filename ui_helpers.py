import os
import json
from typing import List, Sequence

from rich.console import Console
from rich.table import Table

from book import Book
from borrow_record import BorrowRecord
from user import User

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _render(rows: Sequence[dict], columns: List[str], title: str, empty_message: str, plain_line) -> None:
    mode = get_output_mode()

    if not rows:
        print(empty_message)
        return

    if mode == "json":
        print(json.dumps(list(rows), ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for col in columns:
            table.add_column(col.replace("_", " ").title(), style="white")
        for row in rows:
            table.add_row(*["" if row[col] is None else str(row[col]) for col in columns])
        _console.print(table)
    else:
        for row in rows:
            print(plain_line(row))


def print_books(books: List[Book]) -> None:
    """Print books in the current output mode.
    - plain: 'ISBN - Title by Author (Year) [Category] available|borrowed'
    - json: list of book dicts
    - rich: table
    """
    _render(
        [b.to_dict() for b in books],
        ["isbn", "title", "author", "year", "category", "is_available"],
        "📚 Books",
        "No books in library.",
        lambda r: (
            f"{r['isbn']} - {r['title']} by {r['author']} ({r['year']}) [{r['category']}] "
            f"{'available' if r['is_available'] else 'borrowed'}"
        ),
    )


def print_users(users: List[User]) -> None:
    _render(
        [u.to_dict() for u in users],
        ["user_id", "username", "email", "role"],
        "👤 Users",
        "No users found.",
        lambda r: f"{r['user_id']} - {r['username']} <{r['email']}> [{r['role']}]",
    )


def print_records(records: List[BorrowRecord]) -> None:
    _render(
        [r.to_dict() for r in records],
        ["record_id", "user_id", "book_isbn", "borrow_date", "return_date", "is_returned"],
        "🔖 Borrow Records",
        "No borrow records.",
        lambda r: (
            f"{r['record_id']} - {r['user_id']} borrowed {r['book_isbn']} on {r['borrow_date']}"
            + (f", returned {r['return_date']}" if r["is_returned"] else ", not returned")
        ),
    )
