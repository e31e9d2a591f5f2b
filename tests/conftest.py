"""
Pytest configuration and shared fixtures for pe_backtest tests.
"""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pandas as pd
import pytest

from pe_backtest.core.data_provider import Company, Rule
from pe_backtest.data.market_data import MarketDataManager
from pe_backtest.data.memory_provider import InMemoryDataProvider


D1 = date(2024, 1, 2)
D2 = date(2024, 1, 3)
D3 = date(2024, 1, 4)
D4 = date(2024, 1, 5)
D5 = date(2024, 1, 8)


def build_provider(
    series: dict[str, list[tuple]],
    rule: tuple[str, str] = ("10", "20"),
    companies: list[Company] | None = None,
) -> InMemoryDataProvider:
    """Build an in-memory provider.

    series maps company_id -> [(date, pe_ratio, price_or_None), ...].
    A price of None means no price row for that day.
    """
    provider = InMemoryDataProvider()
    if companies is None:
        companies = [Company(company_id=cid, symbol=f"SYM{cid}") for cid in series]
    for company in companies:
        provider.add_company(company)

    pe_rows, price_rows = [], []
    for cid, rows in series.items():
        for day, ratio, price in rows:
            pe_rows.append({"company_id": cid, "date": day, "value": str(ratio)})
            if price is not None:
                price_rows.append({"company_id": cid, "date": day, "price_per_share": str(price)})

    provider.load_valuations(pd.DataFrame(pe_rows, columns=["company_id", "date", "value"]))
    provider.load_prices(pd.DataFrame(price_rows, columns=["company_id", "date", "price_per_share"]))
    provider.add_rule(Decimal(rule[0]), Decimal(rule[1]))
    return provider


@pytest.fixture
def rule():
    return Rule(rule_id=1, buy_level=Decimal("10"), sell_level=Decimal("20"))


@pytest.fixture
def company():
    return Company(company_id="1", symbol="AAPL")


@pytest.fixture
def make_manager():
    """Factory for MarketDataManager over an in-memory provider (closed after test)."""
    managers = []

    def _make(series, **kwargs):
        manager = MarketDataManager(build_provider(series), **kwargs)
        managers.append(manager)
        return manager

    yield _make
    for manager in managers:
        manager.close()
