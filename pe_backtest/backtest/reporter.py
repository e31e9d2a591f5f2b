"""
백테스트 결과 응답 변환 모듈.

[ 역할 ]
    BacktestResult를 외부 응답 형태(dict/JSON)로 변환. 값은 바꾸지 않는다.

[ 응답 형태 ]
    {
      "trades": [{"number", "symbol", "type", "date", "peRatio", "pricePerShare",
                  "bankAccountBalance", "shares"}, ...],
      "finalTotalBalance": ...,
      "profitLossPercentage": ...
    }

[ 호출하는 곳 ]
    - run_backtest.py에서 --output 지정 시 JSON 저장
"""

from pathlib import Path
from typing import Any

import simplejson

from pe_backtest.backtest.metrics import BacktestResult, Trade


def trade_to_dict(trade: Trade) -> dict[str, Any]:
    return {
        "number": trade.number,
        "symbol": trade.symbol,
        "type": trade.trade_type.value,
        "date": trade.date.isoformat(),
        "peRatio": trade.pe_ratio,
        "pricePerShare": trade.price_per_share,
        "bankAccountBalance": trade.balance_after,
        "shares": trade.shares,
    }


def to_response(result: BacktestResult) -> dict[str, Any]:
    """응답 dict 생성. Decimal 값은 그대로 둔다."""
    return {
        "trades": [trade_to_dict(t) for t in result.trades],
        "finalTotalBalance": result.final_total_balance,
        "profitLossPercentage": result.profit_loss_percentage,
    }


def to_json(result: BacktestResult, indent: int | None = 2) -> str:
    """응답 JSON 문자열. Decimal은 자릿수 손실 없이 JSON 숫자로 기록 (float 변환 없음)."""
    return simplejson.dumps(to_response(result), use_decimal=True, indent=indent, ensure_ascii=False)


def save_json(result: BacktestResult, path: str | Path) -> None:
    """응답 JSON을 파일로 저장."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(to_json(result))
