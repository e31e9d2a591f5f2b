"""
백테스트 입력 데이터 인터페이스 정의.

[ 역할 ]
    PER 시계열, 주가, 매매 규칙, 종목 목록을 제공하는 읽기 전용 인터페이스.
    데이터 소스(ClickHouse, DataFrame 등)에 독립적으로 엔진에 데이터 공급.
    원시 행(row)은 구현체 경계에서 한 번만 아래 타입으로 변환하며,
    엔진은 타입이 정해진 엔티티만 다룬다.

[ 구현체 ]
    - data/clickhouse_provider.py  (ClickHouse 테이블 조회)
    - data/memory_provider.py      (DataFrame 기반, 테스트/샘플용)

[ 호출하는 곳 ]
    - data/market_data.py::MarketDataManager가 타임아웃/예외 변환을 씌워서 사용
    - backtest/engine.py::BacktestEngine이 규칙/종목 목록을 직접 조회
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class Company:
    """종목 정보. CompanyDirectory가 제공."""
    company_id: str
    symbol: str
    name: str = ""
    sector: str = ""
    industry: str = ""


@dataclass(frozen=True)
class Rule:
    """PER 매매 규칙. PER < buy_level 이면 매수, PER > sell_level 이면 매도."""
    rule_id: int
    buy_level: Decimal
    sell_level: Decimal


@dataclass(frozen=True)
class ValuationObservation:
    """일별 PER 관측치. (company_id, date)당 하나."""
    company_id: str
    date: date
    value: Decimal


class MarketDataProvider(ABC):
    """PER 시계열 및 주가 제공 추상 클래스."""

    @abstractmethod
    def get_valuation_series(
        self,
        company_id: str,
        start_date: date,
        end_date: date,
    ) -> list[ValuationObservation]:
        """기간 내 PER 관측치 조회.

        Args:
            company_id: 종목 ID
            start_date: 시작일 (포함)
            end_date: 종료일 (포함)

        Returns:
            날짜 오름차순 관측치 리스트 (없으면 빈 리스트)
        """
        ...

    @abstractmethod
    def get_price(self, company_id: str, on_date: date) -> Decimal:
        """특정일 주가 조회.

        Raises:
            PriceUnavailableError: 해당일 가격이 없는 경우 (0을 반환하지 않음)
        """
        ...


class RuleProvider(ABC):
    """매매 규칙 저장소 추상 클래스."""

    @abstractmethod
    def get_rule(self, rule_id: int) -> Rule:
        """규칙 조회.

        Raises:
            RuleNotFoundError: 규칙이 없는 경우
        """
        ...

    @abstractmethod
    def list_rules(self) -> list[Rule]:
        """전체 규칙 목록 (rule_id 오름차순)."""
        ...

    @abstractmethod
    def add_rule(self, buy_level: Decimal, sell_level: Decimal) -> Rule:
        """규칙 추가. 새 rule_id는 기존 최대값 + 1."""
        ...

    @abstractmethod
    def delete_rule(self, rule_id: int) -> None:
        """규칙 삭제.

        Raises:
            RuleNotFoundError: 규칙이 없는 경우
        """
        ...


class CompanyDirectory(ABC):
    """백테스트 대상 종목 목록 제공 추상 클래스."""

    @abstractmethod
    def list_companies(self) -> list[Company]:
        """전체 종목 목록. 순서는 보장하지 않음 (엔진이 symbol로 정렬)."""
        ...
