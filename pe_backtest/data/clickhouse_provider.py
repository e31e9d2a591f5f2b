"""
ClickHouse 기반 데이터 제공자 구현.

[ 역할 ]
    ClickHouse에 저장된 PER/주가/규칙/종목 데이터를 조회하여 엔진에 제공.
    MarketDataProvider, RuleProvider, CompanyDirectory 인터페이스를 모두 구현.
    조회 결과 행은 여기서 한 번만 타입 엔티티(Company, Rule, ValuationObservation)로
    변환하며, 금액/비율은 Decimal(str(v))로 강제한다.

[ 의존성 ]
    - core/data_provider.py (추상 클래스 및 엔티티)
    - data/clickhouse_schema.py (ClickHouse 연결 및 스키마)

[ 호출하는 곳 ]
    - run_backtest.py (--source clickhouse 옵션 사용 시)
"""

import logging
from datetime import date
from decimal import Decimal

from clickhouse_connect.driver import Client
from clickhouse_connect.driver.exceptions import ClickHouseError

from pe_backtest.core.data_provider import (
    Company,
    CompanyDirectory,
    MarketDataProvider,
    Rule,
    RuleProvider,
    ValuationObservation,
)
from pe_backtest.core.errors import (
    BacktestError,
    DirectoryFetchError,
    PerCompanyDataError,
    PriceUnavailableError,
    RuleNotFoundError,
)
from pe_backtest.data.clickhouse_schema import get_client

logger = logging.getLogger("pe_backtest.data")


def _to_decimal(value) -> Decimal:
    """DB 값을 Decimal로 변환. float도 str()을 거쳐 이진 오차를 남기지 않는다."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class ClickHouseDataProvider(MarketDataProvider, RuleProvider, CompanyDirectory):
    """ClickHouse 기반 데이터 제공자.

    사용 예:
        provider = ClickHouseDataProvider('localhost', 8123, 'default', password='password')
        rule = provider.get_rule(1)
        series = provider.get_valuation_series('1', date(2024, 1, 1), date(2024, 12, 31))
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8123,
        database: str = "default",
        user: str = "default",
        password: str = "password",
        connect_timeout: int = 10,
        send_receive_timeout: int = 30,
        client: Client | None = None,
    ):
        """
        Args:
            host: ClickHouse 호스트
            port: HTTP 포트 (기본값: 8123)
            database: 데이터베이스 이름
            user: 사용자 이름
            password: 비밀번호
            connect_timeout: 연결 타임아웃 (초)
            send_receive_timeout: 쿼리 타임아웃 (초)
            client: 이미 생성된 클라이언트 (테스트에서 주입)
        """
        self.client: Client = client or get_client(
            host, port, database, user, password, connect_timeout, send_receive_timeout
        )

    # ─── MarketDataProvider ──────────────────────────────────────────────────

    def get_valuation_series(
        self,
        company_id: str,
        start_date: date,
        end_date: date,
    ) -> list[ValuationObservation]:
        """기간 내 PER 관측치 조회 (날짜 오름차순)."""
        query = """
            SELECT date, value
            FROM pe_ratios
            WHERE company_id = %(company_id)s
              AND date >= %(start_date)s
              AND date <= %(end_date)s
            ORDER BY date ASC
        """
        try:
            result = self.client.query(
                query,
                parameters={
                    "company_id": company_id,
                    "start_date": start_date,
                    "end_date": end_date,
                },
            )
        except ClickHouseError as e:
            raise PerCompanyDataError(company_id, f"PER 조회 실패: {e}") from e

        return [
            ValuationObservation(company_id=company_id, date=row[0], value=_to_decimal(row[1]))
            for row in result.result_rows
        ]

    def get_price(self, company_id: str, on_date: date) -> Decimal:
        """특정일 주가 조회. 행이 없으면 PriceUnavailableError."""
        query = """
            SELECT price_per_share
            FROM prices
            WHERE company_id = %(company_id)s
              AND date = %(date)s
            LIMIT 1
        """
        try:
            result = self.client.query(query, parameters={"company_id": company_id, "date": on_date})
        except ClickHouseError as e:
            raise PerCompanyDataError(company_id, f"주가 조회 실패: {e}") from e

        if not result.result_rows:
            raise PriceUnavailableError(company_id, on_date)
        return _to_decimal(result.result_rows[0][0])

    # ─── RuleProvider ────────────────────────────────────────────────────────

    def get_rule(self, rule_id: int) -> Rule:
        query = """
            SELECT rule_id, buy_level, sell_level
            FROM pe_ratio_rules
            WHERE rule_id = %(rule_id)s
            LIMIT 1
        """
        try:
            result = self.client.query(query, parameters={"rule_id": rule_id})
        except ClickHouseError as e:
            raise BacktestError(f"규칙 조회 실패 (rule_id={rule_id}): {e}") from e

        if not result.result_rows:
            raise RuleNotFoundError(rule_id)
        return self._row_to_rule(result.result_rows[0])

    def list_rules(self) -> list[Rule]:
        query = "SELECT rule_id, buy_level, sell_level FROM pe_ratio_rules ORDER BY rule_id"
        try:
            result = self.client.query(query)
        except ClickHouseError as e:
            raise BacktestError(f"규칙 목록 조회 실패: {e}") from e
        return [self._row_to_rule(row) for row in result.result_rows]

    def add_rule(self, buy_level: Decimal, sell_level: Decimal) -> Rule:
        # ClickHouse에는 자동 증가 컬럼이 없으므로 max + 1
        try:
            result = self.client.query("SELECT max(rule_id) FROM pe_ratio_rules")
            current_max = result.result_rows[0][0] if result.result_rows else 0
            rule = Rule(
                rule_id=int(current_max or 0) + 1,
                buy_level=_to_decimal(buy_level),
                sell_level=_to_decimal(sell_level),
            )
            self.client.insert(
                "pe_ratio_rules",
                [[rule.rule_id, rule.buy_level, rule.sell_level]],
                column_names=["rule_id", "buy_level", "sell_level"],
            )
        except ClickHouseError as e:
            raise BacktestError(f"규칙 추가 실패: {e}") from e

        logger.info(f"규칙 추가: #{rule.rule_id} (buy < {rule.buy_level}, sell > {rule.sell_level})")
        return rule

    def delete_rule(self, rule_id: int) -> None:
        self.get_rule(rule_id)  # 없으면 RuleNotFoundError
        try:
            self.client.command(
                "ALTER TABLE pe_ratio_rules DELETE WHERE rule_id = %(rule_id)s",
                parameters={"rule_id": rule_id},
            )
        except ClickHouseError as e:
            raise BacktestError(f"규칙 삭제 실패 (rule_id={rule_id}): {e}") from e
        logger.info(f"규칙 삭제: #{rule_id}")

    @staticmethod
    def _row_to_rule(row) -> Rule:
        return Rule(rule_id=int(row[0]), buy_level=_to_decimal(row[1]), sell_level=_to_decimal(row[2]))

    # ─── CompanyDirectory ────────────────────────────────────────────────────

    def list_companies(self) -> list[Company]:
        """종목 목록 조회. 실패 시 DirectoryFetchError."""
        query = "SELECT company_id, symbol, name, sector, industry FROM companies"
        try:
            result = self.client.query(query)
        except ClickHouseError as e:
            raise DirectoryFetchError(f"종목 목록 조회 실패: {e}") from e

        return [
            Company(
                company_id=str(row[0]),
                symbol=row[1],
                name=row[2] or "",
                sector=row[3] or "",
                industry=row[4] or "",
            )
            for row in result.result_rows
        ]

    def close(self):
        """ClickHouse 연결 종료."""
        if hasattr(self.client, 'close'):
            self.client.close()
