"""
백테스트 예외 정의.

[ 분류 ]
    ValidationError       - 요청 값(ruleId, 날짜) 오류. 요청 즉시 실패.
    RuleNotFoundError     - 규칙 없음. 요청 실패.
    DirectoryFetchError   - 종목 목록 조회 실패. 요청 실패.
    PerCompanyDataError   - 한 종목의 PER/가격 조회 실패. 해당 종목(또는 해당일)만 건너뜀.
    PriceUnavailableError - 특정일 가격 없음. PerCompanyDataError의 하위 클래스.

[ 처리 원칙 ]
    치명적 오류는 시뮬레이션 시작 전에 발생하여 실행을 중단한다.
    종목 단위 오류는 backtest/engine.py에서 잡아서 "미거래 종목"으로 처리하고
    배분 금액을 그대로 최종 잔고에 합산한다.
"""

from datetime import date


class BacktestError(Exception):
    """백테스트 관련 예외의 기본 클래스."""


class ValidationError(BacktestError):
    """요청 필드 검증 실패."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class RuleNotFoundError(BacktestError):
    """해당 ID의 매매 규칙이 없음."""

    def __init__(self, rule_id: int):
        self.rule_id = rule_id
        super().__init__(f"Rule not found: {rule_id}")


class DirectoryFetchError(BacktestError):
    """종목 목록을 가져올 수 없음."""


class PerCompanyDataError(BacktestError):
    """한 종목의 데이터 조회 실패."""

    def __init__(self, company_id: str, message: str):
        self.company_id = company_id
        super().__init__(f"[{company_id}] {message}")


class PriceUnavailableError(PerCompanyDataError):
    """특정일 주가 없음. 0으로 대체하지 않는다."""

    def __init__(self, company_id: str, on_date: date):
        self.on_date = on_date
        super().__init__(company_id, f"price unavailable on {on_date.isoformat()}")
