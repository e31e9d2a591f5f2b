"""
테스트/샘플 실행용 메모리 데이터 제공자 구현.

[ 역할 ]
    DB 없이 미리 로드된 DataFrame에서 PER/주가/규칙/종목 데이터를 제공.
    MarketDataProvider, RuleProvider, CompanyDirectory 인터페이스를 모두 구현.

[ 데이터 형식 ]
    PER   DataFrame: columns [company_id, date, value]
    주가  DataFrame: columns [company_id, date, price_per_share]

[ 호출하는 곳 ]
    - run_backtest.py --source sample (generate_sample_data()로 만든 데이터)
    - tests/ 의 공통 fixture
"""

from datetime import date
from decimal import Decimal

import pandas as pd

from pe_backtest.core.data_provider import (
    Company,
    CompanyDirectory,
    MarketDataProvider,
    Rule,
    RuleProvider,
    ValuationObservation,
)
from pe_backtest.core.errors import PriceUnavailableError, RuleNotFoundError

VALUATION_COLUMNS = ["company_id", "date", "value"]
PRICE_COLUMNS = ["company_id", "date", "price_per_share"]


def _normalize(df: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    """컬럼 검사 + 날짜를 datetime.date로 통일 + (종목, 날짜) 중복 제거."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"필수 컬럼 누락: {missing}")

    df = df[columns].copy()
    df["company_id"] = df["company_id"].astype(str)
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df = df.drop_duplicates(subset=["company_id", "date"], keep="last")
    return df.sort_values(["company_id", "date"]).reset_index(drop=True)


class InMemoryDataProvider(MarketDataProvider, RuleProvider, CompanyDirectory):
    """DataFrame 기반 데이터 제공자.

    사용법:
        provider = InMemoryDataProvider()
        provider.add_company(Company("1", "AAPL"))
        provider.load_valuations(pe_df)
        provider.load_prices(price_df)
        rule = provider.add_rule(Decimal("10"), Decimal("20"))
    """

    def __init__(self):
        self._companies: dict[str, Company] = {}  # company_id → Company
        self._rules: dict[int, Rule] = {}         # rule_id → Rule
        self._valuations = pd.DataFrame(columns=VALUATION_COLUMNS)
        self._prices: dict[tuple[str, date], Decimal] = {}  # (company_id, date) → 주가

    def add_company(self, company: Company) -> None:
        self._companies[company.company_id] = company

    def load_valuations(self, df: pd.DataFrame) -> None:
        """PER 데이터 로드 (기존 데이터 교체)."""
        self._valuations = _normalize(df, VALUATION_COLUMNS)

    def load_prices(self, df: pd.DataFrame) -> None:
        """주가 데이터 로드 (기존 데이터 교체)."""
        df = _normalize(df, PRICE_COLUMNS)
        self._prices = {
            (row.company_id, row.date): Decimal(str(row.price_per_share))
            for row in df.itertuples(index=False)
        }

    # ─── MarketDataProvider ──────────────────────────────────────────────────

    def get_valuation_series(
        self,
        company_id: str,
        start_date: date,
        end_date: date,
    ) -> list[ValuationObservation]:
        df = self._valuations
        mask = (df["company_id"] == company_id) & (df["date"] >= start_date) & (df["date"] <= end_date)
        return [
            ValuationObservation(company_id=company_id, date=row.date, value=Decimal(str(row.value)))
            for row in df[mask].itertuples(index=False)
        ]

    def get_price(self, company_id: str, on_date: date) -> Decimal:
        try:
            return self._prices[(company_id, on_date)]
        except KeyError:
            raise PriceUnavailableError(company_id, on_date) from None

    # ─── RuleProvider ────────────────────────────────────────────────────────

    def get_rule(self, rule_id: int) -> Rule:
        if rule_id not in self._rules:
            raise RuleNotFoundError(rule_id)
        return self._rules[rule_id]

    def list_rules(self) -> list[Rule]:
        return [self._rules[k] for k in sorted(self._rules)]

    def add_rule(self, buy_level: Decimal, sell_level: Decimal) -> Rule:
        rule_id = max(self._rules, default=0) + 1
        rule = Rule(rule_id=rule_id, buy_level=Decimal(str(buy_level)), sell_level=Decimal(str(sell_level)))
        self._rules[rule_id] = rule
        return rule

    def delete_rule(self, rule_id: int) -> None:
        if rule_id not in self._rules:
            raise RuleNotFoundError(rule_id)
        del self._rules[rule_id]

    # ─── CompanyDirectory ────────────────────────────────────────────────────

    def list_companies(self) -> list[Company]:
        """등록 순서 그대로 반환."""
        return list(self._companies.values())
