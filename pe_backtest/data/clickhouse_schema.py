"""
ClickHouse 데이터베이스 스키마 정의 및 연결 관리

[ 테이블 ]
    companies       - 종목 목록 (company_id, symbol, name, sector, industry)
    pe_ratios       - 일별 PER (company_id, date, value)
    prices          - 일별 주가 (company_id, date, price_per_share)
    pe_ratio_rules  - PER 매매 규칙 (rule_id, buy_level, sell_level)

    데이터 적재는 외부 수집기가 담당하며, 이 모듈은 조회 측에서 필요한
    테이블 정의만 보장한다.
"""
import logging

import clickhouse_connect
from clickhouse_connect.driver import Client
from clickhouse_connect.driver.exceptions import ClickHouseError

from pe_backtest.core.errors import BacktestError

logger = logging.getLogger("pe_backtest.data")


def get_client(
    host: str = "localhost",
    port: int = 8123,
    database: str = "default",
    user: str = "default",
    password: str = "password",
    connect_timeout: int = 10,
    send_receive_timeout: int = 30,
) -> Client:
    """
    ClickHouse 클라이언트 연결 생성

    Args:
        host: ClickHouse 호스트
        port: HTTP 포트 (기본값: 8123)
        database: 데이터베이스 이름
        user: 사용자 이름
        password: 비밀번호
        connect_timeout: 연결 타임아웃 (초)
        send_receive_timeout: 쿼리 송수신 타임아웃 (초)

    Returns:
        ClickHouse 클라이언트 객체

    Raises:
        BacktestError: 서버에 접속할 수 없음
    """
    try:
        client = clickhouse_connect.get_client(
            host=host,
            port=port,
            database=database,
            username=user,
            password=password,
            connect_timeout=connect_timeout,
            send_receive_timeout=send_receive_timeout,
        )
    except ClickHouseError as e:
        raise BacktestError(f"ClickHouse 접속 실패 ({host}:{port}): {e}") from e
    return client


def initialize_schema(client: Client) -> None:
    """
    필요한 테이블 생성 (이미 존재하면 무시)

    Args:
        client: ClickHouse 클라이언트
    """
    create_companies_table = """
    CREATE TABLE IF NOT EXISTS companies (
        company_id String,
        symbol String,
        name String DEFAULT '',
        sector String DEFAULT '',
        industry String DEFAULT ''
    )
    ENGINE = ReplacingMergeTree()
    ORDER BY company_id
    """

    # 금액/비율은 Float64 대신 Decimal64(4)로 저장 (누적 오차 방지)
    create_pe_ratios_table = """
    CREATE TABLE IF NOT EXISTS pe_ratios (
        company_id String,
        date Date,
        value Decimal64(4)
    )
    ENGINE = ReplacingMergeTree()
    PARTITION BY toYYYYMM(date)
    ORDER BY (company_id, date)
    """

    create_prices_table = """
    CREATE TABLE IF NOT EXISTS prices (
        company_id String,
        date Date,
        price_per_share Decimal64(4)
    )
    ENGINE = ReplacingMergeTree()
    PARTITION BY toYYYYMM(date)
    ORDER BY (company_id, date)
    """

    create_rules_table = """
    CREATE TABLE IF NOT EXISTS pe_ratio_rules (
        rule_id UInt32,
        buy_level Decimal64(4),
        sell_level Decimal64(4)
    )
    ENGINE = MergeTree()
    ORDER BY rule_id
    """

    try:
        for ddl in (create_companies_table, create_pe_ratios_table, create_prices_table, create_rules_table):
            client.command(ddl)
    except ClickHouseError as e:
        raise BacktestError(f"테이블 생성 실패: {e}") from e
    logger.info("테이블 생성 완료 (또는 이미 존재)")


def verify_connection(client: Client) -> None:
    """
    ClickHouse 연결 검증. 백테스트 시작 전에 호출하여 접속 문제를 바로 드러낸다.

    Args:
        client: ClickHouse 클라이언트

    Raises:
        BacktestError: 쿼리 실패 또는 예상치 못한 응답
    """
    try:
        result = client.command("SELECT 1")
    except ClickHouseError as e:
        raise BacktestError(f"ClickHouse 연결 실패: {e}") from e

    if result != 1:
        raise BacktestError(f"ClickHouse 연결 확인 실패: SELECT 1 -> {result!r}")
    logger.info("ClickHouse 연결 확인")
