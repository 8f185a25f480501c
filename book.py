from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class BookCategory(Enum):
    """The fixed set of shelves a book can belong to. Values are display labels."""

    SOFTWARE_ENGINEERING = "Software Engineering"
    MANAGEMENT = "Management"
    ARTIFICIAL_INTELLIGENCE = "Artificial Intelligence"

    @property
    def label(self) -> str:
        return self.value


@dataclass
class Book:
    """A single title in the library, keyed by ISBN."""

    kind: BookCategory
    isbn: str
    title: str
    author: str
    year: int
    is_available: bool = field(default=True)

    def __post_init__(self) -> None:
        self.isbn = self.isbn.strip()
        self.title = self.title.strip()
        self.author = self.author.strip()

    @property
    def category(self) -> str:
        return self.kind.label

    def __str__(self) -> str:
        return (
            f"ISBN: {self.isbn}, Title: {self.title}, Author: {self.author}, Year: {self.year}, "
            f"Available: {self.is_available}, Category: {self.category}"
        )

    def to_dict(self) -> dict:
        return {
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "year": self.year,
            "category": self.category,
            "is_available": self.is_available,
        }
