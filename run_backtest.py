"""
PER 백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml의 규칙/기간, 샘플 데이터)
    python run_backtest.py

    # 규칙/기간 지정
    python run_backtest.py --rule-id 2 --start 2023-01-01 --end 2023-12-31

    # ClickHouse 데이터 사용
    python run_backtest.py --source clickhouse
    python run_backtest.py --source clickhouse --init-schema

    # 결과 JSON 저장
    python run_backtest.py --output results/backtest.json

    # 종목 병렬 처리
    python run_backtest.py --workers 8

    # 규칙 관리
    python run_backtest.py --list-rules
    python run_backtest.py --add-rule 12.5 22
    python run_backtest.py --delete-rule 3

    # 종목 목록 확인
    python run_backtest.py --list-companies
"""

import argparse
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path

import numpy as np
import pandas as pd

from pe_backtest.api.request import BacktestRequest
from pe_backtest.backtest.engine import BacktestEngine
from pe_backtest.backtest.metrics import BacktestResult, TradeType
from pe_backtest.backtest.reporter import save_json
from pe_backtest.core.data_provider import Company
from pe_backtest.core.errors import BacktestError, RuleNotFoundError, ValidationError
from pe_backtest.data.clickhouse_provider import ClickHouseDataProvider
from pe_backtest.data.clickhouse_schema import initialize_schema, verify_connection
from pe_backtest.data.memory_provider import InMemoryDataProvider
from pe_backtest.utils.config import Config
from pe_backtest.utils.logger import setup_logger_from_config

SAMPLE_SYMBOLS = ["AAPL", "MSFT", "KO", "JNJ", "XOM"]


def generate_sample_data(
    company_id: str,
    start_date: date,
    end_date: date,
    initial_price: float = 100.0,
    eps: float = 5.0,
    volatility: float = 0.02,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """백테스트용 샘플 PER/주가 데이터 생성. (PER DataFrame, 주가 DataFrame) 반환."""
    np.random.seed(int(company_id) % 2**32)

    dates = pd.bdate_range(start=start_date, end=end_date)
    n = len(dates)

    returns = np.random.normal(0.0002, volatility, n)
    prices = np.round(initial_price * np.cumprod(1 + returns), 2)
    # EPS는 분기마다 조금씩 바뀌는 것으로 근사
    eps_series = eps * np.cumprod(1 + np.where(np.arange(n) % 63 == 0, np.random.normal(0.01, 0.05, n), 0.0))
    pe_ratios = np.round(prices / eps_series, 2)

    day_list = [d.date() for d in dates]
    pe_df = pd.DataFrame({"company_id": company_id, "date": day_list, "value": pe_ratios})
    price_df = pd.DataFrame({"company_id": company_id, "date": day_list, "price_per_share": prices})
    return pe_df, price_df


def build_sample_provider(config: Config) -> InMemoryDataProvider:
    """샘플 데이터로 채운 메모리 제공자 생성."""
    start = date.fromisoformat(config.backtest.start_date)
    end = date.fromisoformat(config.backtest.end_date)

    provider = InMemoryDataProvider()
    pe_frames, price_frames = [], []
    for i, symbol in enumerate(SAMPLE_SYMBOLS, start=1):
        company_id = str(i)
        provider.add_company(Company(company_id=company_id, symbol=symbol))
        pe_df, price_df = generate_sample_data(
            company_id, start, end, initial_price=50.0 + 30 * i, eps=2.0 + i,
        )
        pe_frames.append(pe_df)
        price_frames.append(price_df)
        print(f"  {symbol}: {len(pe_df)}일 데이터")

    provider.load_valuations(pd.concat(pe_frames, ignore_index=True))
    provider.load_prices(pd.concat(price_frames, ignore_index=True))
    provider.add_rule(Decimal("15"), Decimal("25"))
    provider.add_rule(Decimal("20"), Decimal("30"))
    return provider


def build_provider(config: Config, source: str, init_schema: bool = False):
    """데이터 소스에 맞는 제공자 생성."""
    if source == "sample":
        print("샘플 데이터 생성 중...")
        return build_sample_provider(config)

    print("ClickHouse 연결 중...")
    db = config.database
    provider = ClickHouseDataProvider(
        host=db.host,
        port=db.port,
        database=db.database,
        user=db.user,
        password=db.password,
        connect_timeout=db.connect_timeout,
        send_receive_timeout=db.send_receive_timeout,
    )
    try:
        verify_connection(provider.client)
        if init_schema:
            initialize_schema(provider.client)
    except Exception:
        provider.close()
        raise
    return provider


def parse_level(value: str) -> Decimal:
    """argparse type: 규칙 레벨을 Decimal로."""
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"숫자가 아닙니다: {value}") from None


def print_rules(provider) -> None:
    rules = provider.list_rules()
    if not rules:
        print("등록된 규칙이 없습니다.")
        return
    print("등록된 규칙:")
    for rule in rules:
        print(f"  #{rule.rule_id}: PER < {rule.buy_level} 매수, PER > {rule.sell_level} 매도")


def print_companies(provider) -> None:
    companies = sorted(provider.list_companies(), key=lambda c: c.symbol)
    print(f"종목 {len(companies)}개:")
    for c in companies:
        extra = " / ".join(x for x in (c.name, c.sector, c.industry) if x)
        print(f"  {c.symbol:<8} (id={c.company_id}) {extra}")


def run_command(args: argparse.Namespace, config: Config, provider, request: BacktestRequest) -> BacktestResult | None:
    """관리 명령 또는 백테스트 실행. 백테스트를 실행한 경우에만 결과 반환."""
    if args.add_rule:
        rule = provider.add_rule(*args.add_rule)
        print(f"규칙 추가: #{rule.rule_id}")
        return None
    if args.delete_rule is not None:
        provider.delete_rule(args.delete_rule)
        print(f"규칙 삭제: #{args.delete_rule}")
        return None
    if args.list_rules:
        print_rules(provider)
        return None
    if args.list_companies:
        print_companies(provider)
        return None

    engine = BacktestEngine(
        market_data=provider,
        rules=provider,
        companies=provider,
        initial_cash=config.backtest.initial_cash_decimal,
        max_workers=args.workers or config.backtest.max_workers,
        call_timeout=config.backtest.call_timeout,
    )
    return engine.run_backtest(request.rule_id, request.start_date, request.end_date)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="PER 규칙 백테스트 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--source", type=str, default="sample", choices=["sample", "clickhouse"], help="데이터 소스")
    parser.add_argument("--init-schema", action="store_true", help="ClickHouse 테이블 생성 후 실행")
    parser.add_argument("--rule-id", type=str, default=None, help="규칙 ID (config.yaml 대신 지정)")
    parser.add_argument("--start", type=str, default=None, help="시작일 YYYY-MM-DD")
    parser.add_argument("--end", type=str, default=None, help="종료일 YYYY-MM-DD")
    parser.add_argument("--workers", type=int, default=None, help="종목 병렬 처리 수")
    parser.add_argument("--output", type=str, default=None, help="결과 JSON 저장 경로")
    parser.add_argument("--list-rules", action="store_true", help="등록된 규칙 목록 출력")
    parser.add_argument("--add-rule", nargs=2, type=parse_level, metavar=("BUY", "SELL"), help="규칙 추가")
    parser.add_argument("--delete-rule", type=int, metavar="RULE_ID", help="규칙 삭제")
    parser.add_argument("--list-companies", action="store_true", help="종목 목록 출력")
    args = parser.parse_args(argv)

    # 설정 로드
    config_path = Path(args.config)
    if config_path.exists():
        config = Config.from_yaml(config_path)
    else:
        print(f"설정 파일 없음: {config_path}, 기본값 사용")
        config = Config()

    # 로거
    logger = setup_logger_from_config(config)

    try:
        # 기간 검증은 샘플 데이터 생성 전에
        request = BacktestRequest.from_dict({
            "ruleId": args.rule_id if args.rule_id is not None else config.backtest.rule_id,
            "startDate": args.start or config.backtest.start_date,
            "endDate": args.end or config.backtest.end_date,
        })
        config.backtest.start_date = request.start_date.isoformat()
        config.backtest.end_date = request.end_date.isoformat()

        provider = build_provider(config, args.source, init_schema=args.init_schema)
        try:
            result = run_command(args, config, provider, request)
        finally:
            if hasattr(provider, "close"):
                provider.close()

    except ValidationError as e:
        logger.error(f"요청 오류: {e}")
        return 2
    except RuleNotFoundError as e:
        logger.error(f"규칙 없음: {e}")
        return 3
    except BacktestError as e:
        logger.error(f"백테스트 실패: {e}")
        return 1

    if result is None:
        return 0

    print(result.summary())

    sells = [t for t in result.trades if t.trade_type is TradeType.SELL]
    if sells:
        print("\n최근 매도 거래 (최대 5건):")
        for t in sells[-5:]:
            print(f"  #{t.number} [{t.date}] {t.symbol} {t.shares}주 @ {t.price_per_share} -> 잔고 {t.balance_after:,.2f}")

    if args.output:
        save_json(result, args.output)
        print(f"\n결과 저장: {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
