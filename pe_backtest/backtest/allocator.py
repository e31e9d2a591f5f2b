"""
종목별 자금 배분 모듈.

[ 역할 ]
    초기 총자금을 종목 수로 균등 분할. 반올림하지 않고 Decimal 전체 정밀도 유지.

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_backtest()
"""

from decimal import Decimal

from pe_backtest.core.errors import BacktestError


def allocate_capital(initial_total: Decimal, company_count: int) -> Decimal:
    """종목당 배분 금액 = initial_total / company_count.

    Raises:
        BacktestError: company_count < 1 (설정 오류)
    """
    if company_count < 1:
        raise BacktestError(f"배분 대상 종목이 없습니다 (company_count={company_count})")
    return Decimal(initial_total) / company_count
