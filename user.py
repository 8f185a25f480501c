from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class UserRole(Enum):
    ADMIN = "Admin"
    REGULAR_USER = "Regular User"

    @property
    def label(self) -> str:
        return self.value


@dataclass
class User:
    """An account that can log in and borrow books, keyed by user id."""

    kind: UserRole
    user_id: str
    username: str
    password: str
    email: str

    @property
    def role(self) -> str:
        return self.kind.label

    def is_admin(self) -> bool:
        return self.kind is UserRole.ADMIN

    def __str__(self) -> str:
        return f"UserID: {self.user_id}, Username: {self.username}, Email: {self.email}, Role: {self.role}"

    def to_dict(self, include_password: bool = False) -> dict:
        data = {
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_admin": self.is_admin(),
        }
        if include_password:
            data["password"] = self.password
        return data
