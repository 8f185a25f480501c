"""Exceptions raised by the library core.

Factories raise ``InvalidArgumentError`` straight to their caller. Storage
problems and uniqueness violations are handled inside ``Library`` and never
reach callers of the service; the HTTP layer raises ``NotFoundError`` and
``ConflictError`` and maps them, with ``InvalidArgumentError``, to 404, 409
and 400 responses.
"""


class LibraryError(Exception):
    pass


class InvalidArgumentError(LibraryError, ValueError):
    """Unknown category/role tag or malformed numeric input."""


class NotFoundError(LibraryError, LookupError):
    pass


class ConflictError(LibraryError):
    """An insert or update would break a uniqueness constraint."""


class StorageError(LibraryError):
    """The underlying store failed or could not be reached."""
