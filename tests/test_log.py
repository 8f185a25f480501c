import logging
import re

import pytest

from log import setup_logging, shutdown_logging

LINE = re.compile(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] \[(INFO|WARNING|ERROR)\] (.*)$")


@pytest.fixture
def log_file(tmp_path):
    path = tmp_path / "library.log"
    setup_logging(log_file=str(path), level="INFO")
    yield path
    shutdown_logging()


def test_lines_written_to_file_and_stdout(capsys, log_file):
    logger = logging.getLogger("library")
    logger.info("Book added: 978-1 - T")
    logger.warning("Book not available for borrowing: 978-1")
    logger.error("Error adding book: boom")

    lines = log_file.read_text(encoding="utf-8").splitlines()
    matches = [LINE.match(line) for line in lines]
    assert all(matches)
    assert [(m.group(1), m.group(2)) for m in matches] == [
        ("INFO", "Book added: 978-1 - T"),
        ("WARNING", "Book not available for borrowing: 978-1"),
        ("ERROR", "Error adding book: boom"),
    ]
    assert "[INFO] Book added: 978-1 - T" in capsys.readouterr().out


def test_setup_is_idempotent(log_file):
    root = logging.getLogger()
    before = list(root.handlers)
    setup_logging(log_file=str(log_file))
    assert root.handlers == before


def test_shutdown_detaches_handlers(tmp_path):
    root = logging.getLogger()
    before = list(root.handlers)
    setup_logging(log_file=str(tmp_path / "x.log"), console=False)
    assert len(root.handlers) == len(before) + 1
    shutdown_logging()
    shutdown_logging()
    assert root.handlers == before
