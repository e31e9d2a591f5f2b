"""
Tests for configuration loading.
"""

import json
from decimal import Decimal

from pe_backtest.utils.config import BacktestConfig, Config


def test_defaults():
    config = Config()

    assert config.backtest.initial_cash_decimal == Decimal("10000000")
    assert config.backtest.max_workers == 1
    assert config.database.port == 8123
    assert config.log_level == "INFO"


def test_from_yaml_ignores_unknown_keys(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "backtest:\n"
        "  rule_id: 4\n"
        "  start_date: '2023-01-01'\n"
        "  initial_cash: 5000000.5\n"
        "  commission_rate: 0.001\n"
        "database:\n"
        "  host: ch.internal\n"
        "  send_receive_timeout: 5\n"
        "log_level: DEBUG\n",
        encoding="utf-8",
    )

    config = Config.from_yaml(path)

    assert config.backtest.rule_id == 4
    assert config.backtest.start_date == "2023-01-01"
    assert config.backtest.end_date == BacktestConfig().end_date
    assert config.backtest.initial_cash_decimal == Decimal("5000000.5")
    assert not hasattr(config.backtest, "commission_rate")
    assert config.database.host == "ch.internal"
    assert config.database.send_receive_timeout == 5
    assert config.log_level == "DEBUG"


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")

    assert Config.from_yaml(path) == Config()


def test_from_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"backtest": {"max_workers": 8, "call_timeout": 2.5}}), encoding="utf-8")

    config = Config.from_json(path)

    assert config.backtest.max_workers == 8
    assert config.backtest.call_timeout == 2.5


def test_save_yaml_round_trip(tmp_path):
    config = Config()
    config.backtest.rule_id = 9
    config.database.host = "db"
    path = tmp_path / "nested" / "config.yaml"

    config.save_yaml(path)

    assert Config.from_yaml(path) == config
