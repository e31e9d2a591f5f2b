"""
Tests for logger setup.
"""

import logging

import pytest

from pe_backtest.utils.config import Config
from pe_backtest.utils.logger import setup_logger, setup_logger_from_config


@pytest.fixture
def logger_name(request):
    name = f"pe_backtest_test_{request.node.name}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_file_and_console_handlers(tmp_path, logger_name):
    logger = setup_logger(logger_name, level="debug", log_dir=str(tmp_path / "logs"))

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 2

    logger.info("hello")
    for handler in logger.handlers:
        handler.flush()

    (log_file,) = (tmp_path / "logs").glob(f"{logger_name}_*.log")
    assert "[INFO]" in log_file.read_text(encoding="utf-8")


def test_console_only_and_idempotent(logger_name):
    logger = setup_logger(logger_name, log_dir=None)
    again = setup_logger(logger_name, log_dir=None)

    assert logger is again
    assert len(logger.handlers) == 1


def test_unknown_level_rejected(logger_name):
    with pytest.raises(ValueError):
        setup_logger(logger_name, level="LOUD", log_dir=None)


def test_driver_logs_quieted_unless_debug(logger_name):
    setup_logger(logger_name, level="INFO", log_dir=None)
    assert logging.getLogger("clickhouse_connect").level == logging.WARNING

    setup_logger(logger_name, level="DEBUG", log_dir=None)
    assert logging.getLogger("clickhouse_connect").level == logging.DEBUG


def test_setup_from_config(tmp_path):
    config = Config(log_level="WARNING", log_dir=str(tmp_path / "run_logs"))
    logger = setup_logger_from_config(config, console=False)

    try:
        assert logger.name == "pe_backtest"
        assert logger.level == logging.WARNING
        assert list((tmp_path / "run_logs").glob("pe_backtest_*.log"))
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
