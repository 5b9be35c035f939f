import logging
import sys

from financials.utils.logging import LOG_FORMAT, ContextFormatter, get_logger


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("financials.test", logging.INFO, __file__, 10, "Loaded deck", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_appends_extra_context_sorted():
    line = ContextFormatter(fmt="%(levelname)s %(message)s").format(
        make_record(size_bytes=2048, file_hash="abc123")
    )

    assert line == "INFO Loaded deck | file_hash=abc123 size_bytes=2048"


def test_plain_message_without_extra():
    line = ContextFormatter(fmt="%(levelname)s %(message)s").format(make_record())

    assert line == "INFO Loaded deck"


def test_context_stays_on_first_line_of_tracebacks():
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord(
            "financials.test", logging.ERROR, __file__, 10, "Failed", None, sys.exc_info()
        )
    record.period = "2024-01-01"

    lines = ContextFormatter(fmt="%(message)s").format(record).splitlines()

    assert lines[0] == "Failed | period=2024-01-01"
    assert lines[-1] == "ValueError: boom"


def test_get_logger_configures_one_handler(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    logger = get_logger("financials.test.handlers")
    again = get_logger("financials.test.handlers", level="debug")

    assert again is logger
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, ContextFormatter)
    assert logger.handlers[0].formatter._fmt == LOG_FORMAT
    assert logger.level == logging.DEBUG


def test_level_from_environment(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")

    assert get_logger("financials.test.env_level").level == logging.WARNING


def test_unknown_level_falls_back_to_info():
    assert get_logger("financials.test.bad_level", level="verbose").level == logging.INFO
