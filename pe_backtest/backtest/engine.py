"""
백테스팅 엔진 모듈.

[ 역할 ]
    규칙 하나를 전체 종목에 적용하여 가상 매매를 시뮬레이션하고 손익을 집계.
    시스템의 핵심 실행 루프를 담당.

[ 실행 흐름 ]
    run_backtest() 호출 시:
        1. 규칙 조회 (없으면 RuleNotFoundError → 요청 실패)
        2. 종목 목록 조회 (실패 시 DirectoryFetchError → 요청 실패)
        3. symbol 오름차순 정렬 (처리 순서를 입력 순서에 의존하지 않음)
        4. allocate_capital()로 종목당 시작 현금 계산
        5. 종목별로 _simulate_company() 호출 (max_workers > 1이면 병렬)
           → PER 조회 실패 시 해당 종목은 SKIPPED, 배분 금액 그대로 유지
        6. 정렬 순서대로 거래 번호 1부터 부여 (완료 순서와 무관)
        7. 최종 잔고 합산 + 손익률 계산 → BacktestResult

[ 의존성 ]
    - core/data_provider.py (RuleProvider, CompanyDirectory, MarketDataProvider)
    - data/market_data.py::MarketDataManager (타임아웃/예외 변환)
    - backtest/simulator.py::CompanySimulator (종목별 상태 머신)
    - backtest/allocator.py::allocate_capital()

[ 호출하는 곳 ]
    - run_backtest.py (진입점)에서 생성 및 실행
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date
from decimal import Decimal
from functools import reduce
from itertools import count

from pe_backtest.backtest.allocator import allocate_capital
from pe_backtest.backtest.metrics import (
    BacktestResult,
    CompanyResult,
    CompanyStatus,
    Trade,
    calculate_profit_loss_percentage,
)
from pe_backtest.backtest.simulator import CompanySimulator
from pe_backtest.core.data_provider import (
    Company,
    CompanyDirectory,
    MarketDataProvider,
    Rule,
    RuleProvider,
)
from pe_backtest.core.errors import BacktestError, DirectoryFetchError, PerCompanyDataError
from pe_backtest.data.market_data import MarketDataManager

logger = logging.getLogger("pe_backtest.backtest")

DEFAULT_INITIAL_CASH = Decimal("10000000")
SPARE_CALL_SLOTS = 4


class BacktestEngine:
    """백테스팅 엔진. run_backtest()로 시뮬레이션 실행.

    실행 간 상태를 갖지 않는다. 모든 입력은 실행마다 새로 조회.
    """

    def __init__(
        self,
        market_data: MarketDataProvider,
        rules: RuleProvider,
        companies: CompanyDirectory,
        initial_cash: Decimal | int | str = DEFAULT_INITIAL_CASH,
        max_workers: int = 1,             # 1이면 순차 실행
        call_timeout: float | None = None,  # 데이터 조회 1회당 타임아웃 (초)
    ):
        self.market_data = market_data
        self.rules = rules
        self.companies = companies
        self.initial_cash = Decimal(str(initial_cash))
        self.max_workers = max(1, int(max_workers))
        self.call_timeout = call_timeout

        if self.initial_cash <= 0:
            raise BacktestError(f"initial_cash must be positive: {self.initial_cash}")

    def run_backtest(self, rule_id: int, start_date: date, end_date: date) -> BacktestResult:
        """백테스트 실행.

        Args:
            rule_id: 매매 규칙 ID
            start_date: 시작일 (포함)
            end_date: 종료일 (포함)

        Returns:
            BacktestResult

        Raises:
            RuleNotFoundError, DirectoryFetchError: 시뮬레이션 시작 전 치명적 오류
        """
        manager = MarketDataManager(
            self.market_data,
            call_timeout=self.call_timeout,
            # 타임아웃 후에도 끝나지 않은 호출이 슬롯을 잡고 있을 수 있음
            max_workers=self.max_workers + SPARE_CALL_SLOTS,
        )
        try:
            rule = self._load_rule(manager, rule_id)
            universe = self._load_companies(manager)
            allocation = allocate_capital(self.initial_cash, len(universe))

            logger.info(
                f"백테스트 시작: 규칙 #{rule.rule_id} (buy < {rule.buy_level}, sell > {rule.sell_level}), "
                f"{start_date} ~ {end_date}, {len(universe)}개 종목, 종목당 {allocation}"
            )

            simulator = CompanySimulator(rule, manager)
            results = self._simulate_all(simulator, manager, universe, allocation, start_date, end_date)
        finally:
            manager.close()

        return self._aggregate(results, rule, start_date, end_date)

    def _load_rule(self, manager: MarketDataManager, rule_id: int) -> Rule:
        """규칙 조회. 어떤 실패든 요청 실패."""
        try:
            return manager.call_with_timeout(self.rules.get_rule, rule_id)
        except BacktestError:
            raise
        except Exception as e:
            raise BacktestError(f"규칙 조회 실패 (rule_id={rule_id}): {e}") from e

    def _load_companies(self, manager: MarketDataManager) -> list[Company]:
        """종목 목록 조회 + symbol 정렬. 실패/빈 목록은 요청 실패."""
        try:
            companies = manager.call_with_timeout(self.companies.list_companies)
        except DirectoryFetchError:
            raise
        except Exception as e:
            raise DirectoryFetchError(f"종목 목록 조회 실패: {e}") from e

        if not companies:
            raise DirectoryFetchError("종목 목록이 비어 있습니다.")

        # symbol이 같으면 company_id로 순서 고정
        return sorted(companies, key=lambda c: (c.symbol, c.company_id))

    def _simulate_all(
        self,
        simulator: CompanySimulator,
        manager: MarketDataManager,
        universe: list[Company],
        allocation: Decimal,
        start_date: date,
        end_date: date,
    ) -> list[CompanyResult]:
        """종목별 시뮬레이션. 결과는 항상 universe 순서."""
        def simulate(company: Company) -> CompanyResult:
            return self._simulate_company(simulator, manager, company, allocation, start_date, end_date)

        if self.max_workers == 1:
            return [simulate(c) for c in universe]

        # map()은 완료 순서가 아니라 입력 순서대로 결과를 돌려준다
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="backtest") as pool:
            return list(pool.map(simulate, universe))

    def _simulate_company(
        self,
        simulator: CompanySimulator,
        manager: MarketDataManager,
        company: Company,
        allocation: Decimal,
        start_date: date,
        end_date: date,
    ) -> CompanyResult:
        """종목 하나 시뮬레이션. 종목 단위 오류는 여기서 SKIPPED로 변환."""
        try:
            observations = manager.get_valuation_series(company.company_id, start_date, end_date)
            return simulator.run(company, observations, allocation)
        except PerCompanyDataError as e:
            logger.warning(f"{company.symbol}: PER 데이터 조회 실패. 백테스트 건너뜀. ({e})")
            return CompanyResult(
                symbol=company.symbol,
                allocation=allocation,
                trades=(),
                ending_cash=allocation,
                status=CompanyStatus.SKIPPED,
            )

    def _aggregate(
        self,
        results: list[CompanyResult],
        rule: Rule,
        start_date: date,
        end_date: date,
    ) -> BacktestResult:
        """거래 번호 부여 + 잔고 합산 + 손익률 계산."""
        trades = number_trades(results)
        final_total = reduce(lambda acc, r: acc + r.ending_cash, results, Decimal("0"))
        profit_loss = calculate_profit_loss_percentage(final_total, self.initial_cash)

        logger.info(
            f"백테스트 완료. 최종 잔고: {final_total:,.2f}, 손익률: {profit_loss:.2f}%, 거래 {len(trades)}건"
        )
        return BacktestResult(
            trades=trades,
            final_total_balance=final_total,
            profit_loss_percentage=profit_loss,
            initial_total_balance=self.initial_cash,
            rule=rule,
            start_date=start_date,
            end_date=end_date,
            company_results=tuple(results),
        )


def number_trades(results: list[CompanyResult]) -> tuple[Trade, ...]:
    """종목 처리 순서 → 종목 내 날짜 순서로 거래 번호를 1부터 부여."""
    counter = count(1)
    return tuple(
        replace(trade, number=next(counter))
        for result in results
        for trade in result.trades
    )
