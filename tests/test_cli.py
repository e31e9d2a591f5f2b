"""
Tests for the run_backtest.py command line entry point.
"""

import logging
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

import run_backtest
from pe_backtest.core.errors import BacktestError, RuleNotFoundError
from tests.conftest import D1, D2, build_provider


@pytest.fixture
def provider(monkeypatch):
    """build_provider()가 돌려줄 제공자. close() 호출 여부를 확인할 수 있도록 MagicMock."""
    mock = MagicMock()
    monkeypatch.setattr(run_backtest, "build_provider", lambda config, source, init_schema=False: mock)
    monkeypatch.setattr(run_backtest, "setup_logger_from_config", lambda config: logging.getLogger("pe_backtest.cli_test"))
    return mock


def run(*argv, tmp_path):
    return run_backtest.main(["--config", str(tmp_path / "missing.yaml"), *argv])


def test_add_rule_closes_provider(provider, tmp_path):
    provider.add_rule.return_value = MagicMock(rule_id=4)

    assert run("--add-rule", "12.5", "22", tmp_path=tmp_path) == 0

    provider.add_rule.assert_called_once_with(Decimal("12.5"), Decimal("22"))
    provider.close.assert_called_once()


def test_database_failure_in_add_rule_exits_with_error(provider, tmp_path):
    provider.add_rule.side_effect = BacktestError("규칙 추가 실패: read only")

    assert run("--add-rule", "12.5", "22", tmp_path=tmp_path) == 1
    provider.close.assert_called_once()


def test_unknown_rule_exit_code(provider, tmp_path):
    provider.delete_rule.side_effect = RuleNotFoundError(9)

    assert run("--delete-rule", "9", tmp_path=tmp_path) == 3
    provider.close.assert_called_once()


def test_invalid_dates_exit_before_provider(provider, tmp_path):
    assert run("--start", "2024-02-01", "--end", "2024-01-01", tmp_path=tmp_path) == 2
    provider.close.assert_not_called()


def test_backtest_writes_json(monkeypatch, tmp_path):
    sample = build_provider({"1": [(D1, "8", "100"), (D2, "25", "120")]})
    monkeypatch.setattr(run_backtest, "build_provider", lambda config, source, init_schema=False: sample)
    monkeypatch.setattr(run_backtest, "setup_logger_from_config", lambda config: logging.getLogger("pe_backtest.cli_test"))
    output = tmp_path / "out" / "result.json"

    code = run("--start", "2024-01-01", "--end", "2024-01-31", "--output", str(output), tmp_path=tmp_path)

    assert code == 0
    assert '"type": "Sell"' in output.read_text(encoding="utf-8")
