import logging

import pytest
from rich.logging import RichHandler

from nomadops.cli.common.logging import setup_logging


@pytest.fixture
def nomadops_logger():
    logger = logging.getLogger("nomadops")
    saved = (logger.level, list(logger.handlers), logger.propagate)
    yield logger
    logger.setLevel(saved[0])
    logger.handlers[:] = saved[1]
    logger.propagate = saved[2]


def test_setup_logging_installs_one_rich_handler(nomadops_logger, monkeypatch):
    monkeypatch.delenv("NOMADOPS_LOG_LEVEL", raising=False)

    assert setup_logging(None) == logging.INFO
    assert setup_logging("debug") == logging.DEBUG

    handlers = [h for h in nomadops_logger.handlers if isinstance(h, RichHandler)]
    assert len(handlers) == 1
    assert nomadops_logger.level == logging.DEBUG


def test_setup_logging_reads_env(nomadops_logger, monkeypatch):
    monkeypatch.setenv("NOMADOPS_LOG_LEVEL", "WARNING")

    assert setup_logging(None) == logging.WARNING


def test_setup_logging_rejects_unknown_levels(nomadops_logger):
    with pytest.raises(ValueError, match="invalid log level"):
        setup_logging("chatty")
