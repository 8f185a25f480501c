"""Build typed books and users from category/role tags.

Tags are matched case-insensitively against a fixed synonym table. The
display label of each variant is one of its synonyms, so a row stored with
``"Artificial Intelligence"`` in its category column comes back through the
same factory it went in with.
"""
from __future__ import annotations

from typing import Dict, Union

from book import Book, BookCategory
from errors import InvalidArgumentError
from user import User, UserRole

CATEGORY_SYNONYMS: Dict[str, BookCategory] = {
    "se": BookCategory.SOFTWARE_ENGINEERING,
    "softwareengineering": BookCategory.SOFTWARE_ENGINEERING,
    "software_engineering": BookCategory.SOFTWARE_ENGINEERING,
    "software engineering": BookCategory.SOFTWARE_ENGINEERING,
    "management": BookCategory.MANAGEMENT,
    "mgmt": BookCategory.MANAGEMENT,
    "ai": BookCategory.ARTIFICIAL_INTELLIGENCE,
    "artificialintelligence": BookCategory.ARTIFICIAL_INTELLIGENCE,
    "artificial_intelligence": BookCategory.ARTIFICIAL_INTELLIGENCE,
    "artificial intelligence": BookCategory.ARTIFICIAL_INTELLIGENCE,
}

ROLE_SYNONYMS: Dict[str, UserRole] = {
    "admin": UserRole.ADMIN,
    "administrator": UserRole.ADMIN,
    "user": UserRole.REGULAR_USER,
    "regularuser": UserRole.REGULAR_USER,
    "regular_user": UserRole.REGULAR_USER,
    "regular user": UserRole.REGULAR_USER,
}


def parse_category(category: Union[str, BookCategory]) -> BookCategory:
    if isinstance(category, BookCategory):
        return category
    key = (category or "").strip().lower()
    try:
        return CATEGORY_SYNONYMS[key]
    except KeyError:
        raise InvalidArgumentError(f"Unknown book category: {category}") from None


def parse_role(role: Union[str, UserRole]) -> UserRole:
    if isinstance(role, UserRole):
        return role
    key = (role or "").strip().lower()
    try:
        return ROLE_SYNONYMS[key]
    except KeyError:
        raise InvalidArgumentError(f"Unknown user role: {role}") from None


def parse_year(year: Union[int, str]) -> int:
    if isinstance(year, bool):
        raise InvalidArgumentError(f"Invalid publication year: {year!r}")
    if isinstance(year, int):
        return year
    try:
        return int(str(year).strip())
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Invalid publication year: {year!r}") from None


def parse_text(value, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"Book {field_name} must not be empty")
    return value.strip()


def create_book(category: Union[str, BookCategory], isbn: str, title: str, author: str,
                year: Union[int, str]) -> Book:
    """Create a book of the variant selected by ``category``. New books are available."""
    return Book(
        kind=parse_category(category),
        isbn=parse_text(isbn, "ISBN"),
        title=parse_text(title, "title"),
        author=parse_text(author, "author"),
        year=parse_year(year),
    )


def create_user(role: Union[str, UserRole], user_id: str, username: str, password: str, email: str) -> User:
    return User(kind=parse_role(role), user_id=user_id, username=username, password=password, email=email)
