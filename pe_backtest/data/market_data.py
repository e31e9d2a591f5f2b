"""
시장 데이터 관리 모듈.

[ 역할 ]
    MarketDataProvider를 감싸서 호출별 타임아웃 + 예외 변환을 제공.
    - 타임아웃/예상치 못한 예외 → PerCompanyDataError (해당 종목만 건너뜀)
    - 0 이하 가격 → PriceUnavailableError (공짜 매수 방지)

[ 의존성 ]
    - core/data_provider.py::MarketDataProvider (데이터 소스 추상화)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine이 생성하여 simulator에 전달
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, TypeVar

from pe_backtest.core.data_provider import MarketDataProvider, ValuationObservation
from pe_backtest.core.errors import BacktestError, PerCompanyDataError, PriceUnavailableError

logger = logging.getLogger("pe_backtest.data")

T = TypeVar("T")


class MarketDataManager:
    """DataProvider 위에 타임아웃/예외 변환 레이어를 추가한 매니저.

    사용 예:
        manager = MarketDataManager(provider, call_timeout=30)
        series = manager.get_valuation_series("1", start, end)
        price = manager.get_price("1", series[0].date)
    """

    def __init__(
        self,
        data_provider: MarketDataProvider,
        call_timeout: float | None = None,
        max_workers: int = 4,
    ):
        self.provider = data_provider
        self.call_timeout = call_timeout  # None이면 타임아웃 없이 직접 호출
        self._executor: ThreadPoolExecutor | None = None
        if call_timeout is not None:
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="market-data")

    def call_with_timeout(self, fn: Callable[..., T], *args) -> T:
        """fn(*args)를 타임아웃 내에 실행. 초과 시 TimeoutError."""
        if self._executor is None:
            return fn(*args)
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.call_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise TimeoutError(f"{getattr(fn, '__name__', fn)} timed out after {self.call_timeout}s") from None

    def get_valuation_series(
        self,
        company_id: str,
        start_date: date,
        end_date: date,
    ) -> list[ValuationObservation]:
        """PER 시계열 조회. 실패 시 PerCompanyDataError."""
        try:
            series = self.call_with_timeout(
                self.provider.get_valuation_series, company_id, start_date, end_date
            )
        except BacktestError:
            raise
        except Exception as e:
            raise PerCompanyDataError(company_id, f"PER 조회 실패: {e}") from e

        # 구현체가 정렬을 보장하지 않아도 엔진은 날짜 오름차순으로 소비
        return sorted(series, key=lambda obs: obs.date)

    def get_price(self, company_id: str, on_date: date) -> Decimal:
        """주가 조회. 가격이 없거나 0 이하면 PriceUnavailableError."""
        try:
            price = self.call_with_timeout(self.provider.get_price, company_id, on_date)
        except BacktestError:
            raise
        except Exception as e:
            raise PerCompanyDataError(company_id, f"주가 조회 실패 ({on_date}): {e}") from e

        if price is None:
            raise PriceUnavailableError(company_id, on_date)
        if not isinstance(price, Decimal):
            # float 등은 str()을 거쳐 Decimal로
            try:
                price = Decimal(str(price))
            except InvalidOperation:
                raise PerCompanyDataError(company_id, f"주가 형식 오류 ({on_date}): {price!r}") from None
        if not price.is_finite() or price <= 0:
            raise PriceUnavailableError(company_id, on_date)
        return price

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
