from datetime import date

import pytest

from config import settings
from database import Database
from library import Library

FIXED_TODAY = date(2024, 5, 17)


@pytest.fixture(autouse=True)
def _isolated_files(tmp_path, monkeypatch):
    # Keep every test's database and log file under its own tmp_path
    monkeypatch.setattr(settings, "db_file", str(tmp_path / "library.db"))
    monkeypatch.setattr(settings, "log_file", str(tmp_path / "library.log"))


@pytest.fixture
def db(tmp_path, request):
    # Each test gets a unique database file
    database = Database(str(tmp_path / f"test_{request.node.name}.db"))
    yield database
    database.release()


@pytest.fixture
def lib(db):
    library = Library(db, clock=lambda: FIXED_TODAY)
    yield library
    library.close()


@pytest.fixture
def today():
    return FIXED_TODAY
