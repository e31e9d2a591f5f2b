"""
백테스트 요청 검증 모듈.

[ 역할 ]
    {"ruleId", "startDate", "endDate"} 형태의 요청을 경계에서 한 번만 검증하여
    BacktestRequest로 변환. 엔진은 검증된 값만 받는다.
    필드 검증은 pydantic이 담당하고, 실패는 core.errors.ValidationError
    (실패한 필드 이름 포함)로 바꿔서 던진다.

[ 검증 규칙 ]
    ruleId    - 정수 또는 숫자 문자열 (bool, 실수 불가)
    startDate - YYYY-MM-DD
    endDate   - YYYY-MM-DD, startDate 이후

[ 호출하는 곳 ]
    - run_backtest.py에서 CLI 인자/설정값을 검증할 때
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from pe_backtest.core.errors import ValidationError


class BacktestRequest(BaseModel):
    """검증된 백테스트 요청."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rule_id: int = Field(alias="ruleId")
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")

    @field_validator("rule_id", mode="before")
    @classmethod
    def reject_non_integer_rule_id(cls, v: Any) -> Any:
        """pydantic은 True, 2.0도 정수로 받아주므로 먼저 걸러낸다."""
        if isinstance(v, (bool, float)):
            raise ValueError(f"정수가 아닙니다: {v!r}")
        return v

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def require_iso_date(cls, v: Any) -> Any:
        """문자열(YYYY-MM-DD) 또는 date만 허용. 숫자 타임스탬프, datetime은 거부."""
        if isinstance(v, datetime) or not isinstance(v, (str, date)):
            raise ValueError(f"YYYY-MM-DD 형식이 아닙니다: {v!r}")
        return v

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: date, info) -> date:
        """endDate는 startDate 이후."""
        start = info.data.get("start_date")
        if start is not None and v < start:
            raise ValueError(f"startDate({start}) 이후여야 합니다")
        return v

    @classmethod
    def from_dict(cls, data: Any) -> "BacktestRequest":
        """요청 dict에서 생성.

        Raises:
            ValidationError: 필드 누락 또는 형식 오류 (첫 번째 실패 필드)
        """
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            error = e.errors()[0]
            field = str(error["loc"][0]) if error["loc"] else "request"
            raise ValidationError(field, error["msg"]) from None
