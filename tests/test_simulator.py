"""
Tests for the per-company buy/sell state machine.
"""

import threading
from decimal import Decimal

import pytest

from pe_backtest.backtest.metrics import CompanyStatus, TradeType
from pe_backtest.backtest.simulator import CompanySimulator, Position, PositionState, round_money
from pe_backtest.core.data_provider import Rule
from pe_backtest.data.market_data import MarketDataManager
from tests.conftest import D1, D2, D3, D4, D5, build_provider


def simulate(make_manager, company, rule, rows, allocation):
    manager = make_manager({company.company_id: rows})
    observations = manager.get_valuation_series(company.company_id, D1, D5)
    return CompanySimulator(rule, manager).run(company, observations, Decimal(allocation))


def assert_alternates(trades):
    kinds = [t.trade_type for t in trades]
    assert all(a is not b for a, b in zip(kinds, kinds[1:]))
    if kinds:
        assert kinds[0] is TradeType.BUY


# ─── Position ────────────────────────────────────────────────────────────────

def test_position_starts_flat():
    position = Position(cash=Decimal("1000"))

    assert position.state is PositionState.FLAT
    assert position.shares_owned == 0


def test_position_buy_uses_whole_shares_only():
    position = Position(cash=Decimal("1000"))

    shares, cost = position.buy(Decimal("300"))

    assert shares == 3
    assert cost == Decimal("900.0000")
    assert position.cash == Decimal("100")
    assert position.state is PositionState.LONG


def test_position_sell_all_resets():
    position = Position(cash=Decimal("100"), shares_owned=Decimal("3"), state=PositionState.LONG)

    shares, revenue = position.sell_all(Decimal("310"))

    assert shares == 3
    assert revenue == Decimal("930")
    assert position.cash == Decimal("1030")
    assert position.shares_owned == 0
    assert position.state is PositionState.FLAT


def test_round_money_is_bankers_rounding():
    assert round_money(Decimal("1.00005")) == Decimal("1.0000")
    assert round_money(Decimal("1.00015")) == Decimal("1.0002")
    assert round_money(Decimal("2.123456")) == Decimal("2.1235")


# ─── CompanySimulator ────────────────────────────────────────────────────────

def test_buy_then_sell_scenario(make_manager, company, rule):
    result = simulate(make_manager, company, rule, [(D1, "8", "100"), (D2, "25", "120")], "1000000")

    assert len(result.trades) == 2
    buy, sell = result.trades

    assert buy.trade_type is TradeType.BUY
    assert buy.date == D1
    assert buy.shares == 10000
    assert buy.price_per_share == Decimal("100")
    assert buy.pe_ratio == Decimal("8")
    assert buy.balance_after == Decimal("0.00")

    assert sell.trade_type is TradeType.SELL
    assert sell.date == D2
    assert sell.shares == 10000
    assert sell.balance_after == Decimal("1200000.00")

    assert result.ending_cash == Decimal("1200000.00")
    assert result.status is CompanyStatus.TRADED


def test_empty_series_is_no_activity(make_manager, company, rule):
    result = simulate(make_manager, company, rule, [], "2500000")

    assert result.trades == ()
    assert result.ending_cash == Decimal("2500000")
    assert result.status is CompanyStatus.NO_DATA


def test_ratio_never_crosses_thresholds(make_manager, company, rule):
    rows = [(D1, "12", "100"), (D2, "15", "101"), (D3, "19.99", "99"), (D4, "10", "98")]

    result = simulate(make_manager, company, rule, rows, "1000")

    assert result.trades == ()
    assert result.ending_cash == Decimal("1000")
    assert result.status is CompanyStatus.IDLE


def test_thresholds_are_strict(make_manager, company, rule):
    # PER == buy_level 은 매수 아님, PER == sell_level 은 매도 아님
    rows = [(D1, "10", "100"), (D2, "9.99", "100"), (D3, "20", "110")]

    result = simulate(make_manager, company, rule, rows, "1000")

    assert [t.date for t in result.trades] == [D2, D3]
    assert result.trades[1].price_per_share == Decimal("110")


def test_trades_alternate(make_manager, company, rule):
    rows = [
        (D1, "8", "100"),
        (D2, "5", "90"),     # 이미 보유 중: 추가 매수 없음
        (D3, "25", "120"),
        (D4, "5", "100"),
        (D5, "30", "130"),
    ]

    result = simulate(make_manager, company, rule, rows, "1000")

    assert [t.trade_type for t in result.trades] == [
        TradeType.BUY, TradeType.SELL, TradeType.BUY, TradeType.SELL,
    ]
    assert_alternates(result.trades)
    assert [t.shares for t in result.trades] == [10, 10, 12, 12]
    assert result.ending_cash == Decimal("1560")


def test_open_position_is_liquidated_at_last_date(make_manager, company, rule):
    rows = [(D1, "8", "100"), (D2, "15", "105")]

    result = simulate(make_manager, company, rule, rows, "1000")

    assert len(result.trades) == 2
    final = result.trades[-1]
    assert final.trade_type is TradeType.SELL
    assert final.date == D2
    assert final.pe_ratio == Decimal("15")
    assert final.price_per_share == Decimal("105")
    assert final.shares == 10
    assert final.balance_after == Decimal("1050")
    assert result.ending_cash == Decimal("1050")


def test_no_liquidation_when_flat(make_manager, company, rule):
    rows = [(D1, "8", "100"), (D2, "25", "110"), (D3, "15", "105")]

    result = simulate(make_manager, company, rule, rows, "1000")

    assert len(result.trades) == 2
    assert result.trades[-1].date == D2


def test_missing_price_skips_that_day_only(make_manager, company, rule):
    rows = [(D1, "8", None), (D2, "9", "50"), (D3, "12", "60")]

    result = simulate(make_manager, company, rule, rows, "1000")

    assert result.skipped_days == 1
    buy = result.trades[0]
    assert buy.date == D2
    assert buy.shares == 20
    # 가격 없는 날에 공짜 매수가 일어나지 않음
    assert all(t.price_per_share > 0 for t in result.trades)
    assert result.ending_cash == Decimal("1200")


def test_liquidation_uses_last_priced_day_when_last_price_missing(make_manager, company, rule):
    rows = [(D1, "8", "100"), (D2, "15", None)]

    result = simulate(make_manager, company, rule, rows, "1000")

    assert result.skipped_days == 1
    final = result.trades[-1]
    assert final.trade_type is TradeType.SELL
    assert final.date == D1
    assert final.price_per_share == Decimal("100")
    assert result.ending_cash == Decimal("1000")


def test_price_call_timeout_skips_that_day_only(company, rule, monkeypatch):
    provider = build_provider({"1": [(D1, "8", "100"), (D2, "30", "500"), (D3, "25", "130")]})
    release = threading.Event()
    original = provider.get_price

    def slow_on_d2(company_id, on_date):
        if on_date == D2:
            release.wait(5)
        return original(company_id, on_date)

    monkeypatch.setattr(provider, "get_price", slow_on_d2)
    manager = MarketDataManager(provider, call_timeout=0.1)

    try:
        observations = manager.get_valuation_series("1", D1, D5)
        result = CompanySimulator(rule, manager).run(company, observations, Decimal("1000"))
    finally:
        release.set()
        manager.close()

    assert result.skipped_days == 1
    assert [(t.trade_type, t.date) for t in result.trades] == [(TradeType.BUY, D1), (TradeType.SELL, D3)]
    assert result.ending_cash == Decimal("1300")


def test_no_buy_when_cash_below_price(make_manager, company, rule):
    result = simulate(make_manager, company, rule, [(D1, "8", "100")], "50")

    assert result.trades == ()
    assert result.ending_cash == Decimal("50")


def test_cost_rounded_to_four_places(make_manager, company, rule):
    rows = [(D1, "8", "33.33333"), (D2, "15", "33.33335")]

    result = simulate(make_manager, company, rule, rows, "1000")

    buy, sell = result.trades
    assert buy.shares == 30
    assert buy.balance_after == Decimal("0.0001")
    assert sell.balance_after == Decimal("1000.0006")


def test_half_cent_cost_rounds_to_even(make_manager, company, rule):
    result = simulate(make_manager, company, rule, [(D1, "8", "1.00005")], "1.5")

    buy = result.trades[0]
    assert buy.shares == 1
    assert buy.balance_after == Decimal("0.5000")


def test_at_most_one_transition_per_observation(make_manager, company):
    # buy_level > sell_level 이어도 같은 날 매수와 매도가 동시에 일어나지 않음
    inverted = Rule(rule_id=2, buy_level=Decimal("30"), sell_level=Decimal("10"))
    rows = [(D1, "20", "100"), (D2, "20", "100")]

    result = simulate(make_manager, company, inverted, rows, "1000")

    assert [(t.trade_type, t.date) for t in result.trades] == [
        (TradeType.BUY, D1),
        (TradeType.SELL, D2),
    ]


@pytest.mark.parametrize("rows", [
    [(D1, "8", "100")],
    [(D1, "8", "100"), (D2, "25", "90"), (D3, "7", "80")],
    [(D1, "5", "10"), (D2, "21", "11"), (D3, "6", "12"), (D4, "22", "13"), (D5, "4", "14")],
])
def test_always_ends_flat_with_alternating_trades(make_manager, company, rule, rows):
    result = simulate(make_manager, company, rule, rows, "1000")

    assert_alternates(result.trades)
    assert result.trades[-1].trade_type is TradeType.SELL
    assert len(result.trades) % 2 == 0
