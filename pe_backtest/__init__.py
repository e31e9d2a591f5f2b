"""
=============================================================================
PER 규칙 백테스트 시스템 (PE Ratio Backtest)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)
         │
         ├── utils/config.py        ← config.yaml 설정 로드
         ├── utils/logger.py        ← 로깅
         ├── api/request.py         ← 요청(ruleId, 기간) 검증
         │
         └── backtest/engine.py     ← 백테스트 실행 엔진
               │
               ├── backtest/allocator.py  ← 종목당 자금 균등 배분
               ├── backtest/simulator.py  ← 종목별 매수/매도 상태 머신
               ├── backtest/metrics.py    ← 거래/결과 타입, 손익률 계산
               └── backtest/reporter.py   ← 응답(dict/JSON) 변환


[ 핵심 추상 클래스 (core/) - 모든 데이터 구현체의 부모 ]

    core/data_provider.py    → data/clickhouse_provider.py (ClickHouse 조회)
                             → data/memory_provider.py     (DataFrame, 테스트/샘플용)

    core/errors.py           ← 요청 실패(검증/규칙/종목목록)와 종목 단위 실패 구분


[ 데이터 흐름 ]

    1. config.yaml + CLI 인자에서 규칙 ID, 기간 로드 → BacktestRequest 검증
    2. RuleProvider에서 규칙(buy_level, sell_level) 조회
    3. CompanyDirectory에서 종목 목록 조회 → symbol 정렬 → 자금 배분
    4. 종목별로 PER 시계열 + 일별 주가로 CompanySimulator 실행
    5. 거래 번호 부여, 최종 잔고 합산, 손익률 계산 → BacktestResult
    6. reporter.py가 응답 JSON으로 변환
"""
