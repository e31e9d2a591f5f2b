"""
종목별 PER 매매 시뮬레이터.

[ 역할 ]
    한 종목의 PER 시계열을 날짜 순으로 한 번 훑으면서 매수/매도 상태 머신을 실행.
    시스템의 핵심 의사결정 로직.

[ 상태 머신 ]
    FLAT (미보유, 초기 상태)
        └── PER < buy_level 이고 현금 >= 주가 → BUY → LONG
              수량 = floor(현금 / 주가), 비용 = round(수량 * 주가, 4)
    LONG (보유)
        └── PER > sell_level → SELL (전량) → FLAT
              매출 = round(보유수량 * 주가, 4)
    그 외 → 유지. 관측치 하나당 최대 한 번 전이.

    시계열이 끝났는데 LONG이면 마지막 관측일 가격으로 강제 청산(SELL 1건 추가).

[ 가격 처리 ]
    관측일마다 주가를 한 번 조회. 가격이 없으면 그날 판단만 건너뛰고(0으로 대체 금지)
    skipped_days를 증가시킨다. 강제 청산은 가격이 확인된 마지막 관측일 기준.

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine._simulate_company()
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_EVEN, Decimal
from enum import Enum

from pe_backtest.backtest.metrics import CompanyResult, CompanyStatus, Trade, TradeType
from pe_backtest.core.data_provider import Company, Rule, ValuationObservation
from pe_backtest.core.errors import PerCompanyDataError
from pe_backtest.data.market_data import MarketDataManager

logger = logging.getLogger("pe_backtest.backtest")

MONEY_PLACES = Decimal("0.0001")
ZERO = Decimal("0")


def round_money(value: Decimal) -> Decimal:
    """금액을 소수 4자리로 반올림 (banker's rounding)."""
    return value.quantize(MONEY_PLACES, rounding=ROUND_HALF_EVEN)


class PositionState(Enum):
    FLAT = "flat"
    LONG = "long"


@dataclass
class Position:
    """시뮬레이션 중의 종목 포지션. 종목 시뮬레이션이 끝나면 버려진다."""
    cash: Decimal
    shares_owned: Decimal = ZERO
    state: PositionState = PositionState.FLAT

    def buy(self, price: Decimal) -> tuple[Decimal, Decimal]:
        """가용 현금으로 살 수 있는 최대 정수 수량 매수. (수량, 비용) 반환."""
        shares = (self.cash / price).quantize(Decimal("1"), rounding=ROUND_FLOOR)
        cost = round_money(shares * price)
        self.cash -= cost
        self.shares_owned = shares
        self.state = PositionState.LONG
        return shares, cost

    def sell_all(self, price: Decimal) -> tuple[Decimal, Decimal]:
        """보유 수량 전량 매도. (수량, 매출) 반환."""
        shares = self.shares_owned
        revenue = round_money(shares * price)
        self.cash += revenue
        self.shares_owned = ZERO
        self.state = PositionState.FLAT
        return shares, revenue


class CompanySimulator:
    """규칙 하나로 종목별 시뮬레이션을 실행. 종목 간 공유 상태 없음."""

    def __init__(self, rule: Rule, market_data: MarketDataManager):
        self.rule = rule
        self.market_data = market_data

    def run(
        self,
        company: Company,
        observations: list[ValuationObservation],
        allocation: Decimal,
    ) -> CompanyResult:
        """종목 하나 시뮬레이션.

        Args:
            company: 대상 종목
            observations: 날짜 오름차순 PER 관측치
            allocation: 시작 현금

        Returns:
            CompanyResult (trades의 number는 0, 엔진이 부여)
        """
        if not observations:
            logger.info(f"{company.symbol}: 기간 내 PER 없음. 거래 없음.")
            return CompanyResult(
                symbol=company.symbol,
                allocation=allocation,
                trades=(),
                ending_cash=allocation,
                status=CompanyStatus.NO_DATA,
            )

        position = Position(cash=allocation)
        trades: list[Trade] = []
        skipped_days = 0
        last_priced: tuple[ValuationObservation, Decimal] | None = None

        for obs in observations:
            try:
                price = self.market_data.get_price(company.company_id, obs.date)
            except PerCompanyDataError as e:
                logger.warning(f"{company.symbol} [{obs.date}] 판단 건너뜀: {e}")
                skipped_days += 1
                continue
            last_priced = (obs, price)

            trade = self._step(company, position, obs, price)
            if trade is not None:
                trades.append(trade)

        if position.state is PositionState.LONG:
            # LONG이면 최소 매수일 가격은 확인되어 있음
            obs, price = last_priced
            if obs is not observations[-1]:
                logger.warning(
                    f"{company.symbol}: 마지막 관측일({observations[-1].date}) 가격 없음. "
                    f"{obs.date} 가격으로 청산."
                )
            trades.append(self._liquidate(company, position, obs, price))

        return CompanyResult(
            symbol=company.symbol,
            allocation=allocation,
            trades=tuple(trades),
            ending_cash=position.cash,
            status=CompanyStatus.TRADED if trades else CompanyStatus.IDLE,
            skipped_days=skipped_days,
        )

    def _step(
        self,
        company: Company,
        position: Position,
        obs: ValuationObservation,
        price: Decimal,
    ) -> Trade | None:
        """관측치 하나에 대한 상태 전이. 거래가 없으면 None."""
        pe_ratio = obs.value

        if (
            position.state is PositionState.FLAT
            and pe_ratio < self.rule.buy_level
            and position.cash >= price
        ):
            shares, cost = position.buy(price)
            logger.debug(
                f"[{obs.date}] 매수: {company.symbol} {shares}주 @ {price} (PER {pe_ratio}) "
                f"비용 {cost}, 잔고 {position.cash}"
            )
            return self._trade(company, TradeType.BUY, obs, price, position.cash, shares)

        if position.state is PositionState.LONG and pe_ratio > self.rule.sell_level:
            shares, revenue = position.sell_all(price)
            logger.debug(
                f"[{obs.date}] 매도: {company.symbol} {shares}주 @ {price} (PER {pe_ratio}) "
                f"매출 {revenue}, 잔고 {position.cash}"
            )
            return self._trade(company, TradeType.SELL, obs, price, position.cash, shares)

        return None

    def _liquidate(
        self,
        company: Company,
        position: Position,
        obs: ValuationObservation,
        price: Decimal,
    ) -> Trade:
        shares, revenue = position.sell_all(price)
        logger.debug(
            f"[{obs.date}] 청산: {company.symbol} {shares}주 @ {price} 매출 {revenue}, 잔고 {position.cash}"
        )
        return self._trade(company, TradeType.SELL, obs, price, position.cash, shares)

    @staticmethod
    def _trade(
        company: Company,
        trade_type: TradeType,
        obs: ValuationObservation,
        price: Decimal,
        balance: Decimal,
        shares: Decimal,
    ) -> Trade:
        return Trade(
            number=0,
            symbol=company.symbol,
            trade_type=trade_type,
            date=obs.date,
            pe_ratio=obs.value,
            price_per_share=price,
            balance_after=balance,
            shares=shares,
        )
