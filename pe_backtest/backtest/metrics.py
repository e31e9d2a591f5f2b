"""
백테스트 결과 타입 및 손익 계산 모듈.

[ 역할 ]
    시뮬레이터가 만든 거래(Trade), 종목별 결과(CompanyResult),
    전체 결과(BacktestResult)를 정의하고 손익률을 계산.

[ 주요 타입 ]
    Trade          - 개별 거래 (매수/매도). 생성 후 변경 불가.
    CompanyResult  - 한 종목의 시뮬레이션 결과 (거래 목록 + 최종 현금)
    BacktestResult - 전체 결과. summary()로 포맷된 리포트 출력 가능.

[ 호출하는 곳 ]
    - backtest/simulator.py에서 Trade/CompanyResult 생성
    - backtest/engine.py에서 BacktestResult 생성
    - backtest/reporter.py에서 응답 형태로 변환
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from pe_backtest.core.data_provider import Rule


class TradeType(Enum):
    """거래 종류."""
    BUY = "Buy"
    SELL = "Sell"


class CompanyStatus(Enum):
    """종목별 시뮬레이션 결과 상태."""
    TRADED = "traded"     # 거래 발생
    IDLE = "idle"         # 데이터는 있었지만 조건 미충족
    NO_DATA = "no_data"   # 기간 내 PER 없음
    SKIPPED = "skipped"   # 데이터 조회 실패로 건너뜀


@dataclass(frozen=True)
class Trade:
    """개별 거래 기록. number는 엔진이 전체 실행 기준으로 부여."""
    number: int
    symbol: str
    trade_type: TradeType
    date: date
    pe_ratio: Decimal
    price_per_share: Decimal
    balance_after: Decimal    # 거래 직후 현금 잔고
    shares: Decimal           # 거래 수량 (정수값)


@dataclass(frozen=True)
class CompanyResult:
    """한 종목의 시뮬레이션 결과."""
    symbol: str
    allocation: Decimal
    trades: tuple[Trade, ...]
    ending_cash: Decimal
    status: CompanyStatus
    skipped_days: int = 0     # 가격 없음으로 판단을 건너뛴 날 수


@dataclass(frozen=True)
class BacktestResult:
    """백테스트 전체 결과. 생성 후 변경 불가."""
    trades: tuple[Trade, ...]
    final_total_balance: Decimal
    profit_loss_percentage: Decimal
    initial_total_balance: Decimal = Decimal("0")
    rule: Rule | None = None
    start_date: date | None = None
    end_date: date | None = None
    company_results: tuple[CompanyResult, ...] = field(default_factory=tuple)

    def count_by_status(self, status: CompanyStatus) -> int:
        return sum(1 for r in self.company_results if r.status is status)

    def summary(self) -> str:
        """성과 요약 문자열."""
        buys = sum(1 for t in self.trades if t.trade_type is TradeType.BUY)
        sells = len(self.trades) - buys
        period = f"{self.start_date} ~ {self.end_date}" if self.start_date else "-"
        rule = (
            f"#{self.rule.rule_id} (PER < {self.rule.buy_level} 매수, > {self.rule.sell_level} 매도)"
            if self.rule else "-"
        )
        lines = [
            "=" * 50,
            "PER 백테스트 리포트",
            "=" * 50,
            f"규칙:            {rule}",
            f"기간:            {period}",
            f"초기 자금:       {self.initial_total_balance:>18,.2f}",
            f"최종 잔고:       {self.final_total_balance:>18,.2f}",
            f"손익률:          {self.profit_loss_percentage:>17,.2f}%",
            "-" * 50,
            f"총 거래 횟수:    {len(self.trades):>10d}",
            f"  매수:          {buys:>10d}",
            f"  매도:          {sells:>10d}",
            "-" * 50,
            f"거래 종목:       {self.count_by_status(CompanyStatus.TRADED):>10d}",
            f"미거래 종목:     {self.count_by_status(CompanyStatus.IDLE):>10d}",
            f"데이터 없음:     {self.count_by_status(CompanyStatus.NO_DATA):>10d}",
            f"건너뜀:          {self.count_by_status(CompanyStatus.SKIPPED):>10d}",
            "=" * 50,
        ]
        return "\n".join(lines)


def calculate_profit_loss_percentage(final_balance: Decimal, initial_balance: Decimal) -> Decimal:
    """손익률(%) = (최종 - 초기) / 초기 * 100. 반올림하지 않는다."""
    if initial_balance == 0:
        raise ValueError("initial_balance must be non-zero")
    return (final_balance - initial_balance) / initial_balance * 100
