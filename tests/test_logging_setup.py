from __future__ import annotations

import io
import logging

import pytest

from pfledger.logging_setup import configure_logging, get_logger, resolve_level


@pytest.mark.parametrize(
    "value,expected",
    [
        (logging.DEBUG, logging.DEBUG),
        ("warning", logging.WARNING),
        (" 15 ", 15),
        ("nonsense", logging.INFO),
    ],
)
def test_resolve_level(value: int | str, expected: int):
    assert resolve_level(value) == expected


def test_resolve_level_reads_env(monkeypatch: pytest.MonkeyPatch):
    assert resolve_level() == logging.INFO
    monkeypatch.setenv("PFLEDGER_LOG_LEVEL", "DEBUG")
    assert resolve_level() == logging.DEBUG


def test_library_loggers_are_silent_until_configured():
    get_logger("pfledger.test")
    handlers = logging.getLogger("pfledger").handlers
    assert handlers and all(isinstance(h, logging.NullHandler) for h in handlers)


def test_configure_logging_once(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PFLEDGER_LOG_FORMAT", "%(name)s|%(message)s")
    stream = io.StringIO()
    logger = configure_logging("DEBUG", stream=stream)
    # Second call is ignored.
    configure_logging("ERROR", stream=io.StringIO())

    get_logger("pfledger.ingest.importer").debug("import:done import_id=%d", 7)

    assert logger.level == logging.DEBUG
    assert stream.getvalue() == "pfledger.ingest.importer|import:done import_id=7\n"
    assert not any(isinstance(h, logging.NullHandler) for h in logger.handlers)
