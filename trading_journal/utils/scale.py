"""
소수점 스케일(반올림) 정책 모듈.

[ 역할 ]
    금액/퍼센트/고정밀 값의 반올림 자릿수를 한 곳에서 관리.
    내부 연쇄 계산 중에는 반올림하지 않고, 외부로 보고하는 시점(to_dict, RiskMetrics 생성)에만 적용.

[ 기본 스케일 ]
    CURRENCY_SCALE       = 0  (원 단위 금액)
    PERCENT_SCALE        = 2  (수익률, 비율)
    HIGH_PRECISION_SCALE = 6  (EMA, 단가 등 중간값 표시)

[ 호출하는 곳 ]
    - accounting/fifo.py::ClosedTrade.to_dict()
    - analysis/metrics.py::compute_metrics()
    - backtest/engine.py::BacktestResult.to_dict()
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any

CURRENCY_SCALE = 0
PERCENT_SCALE = 2
HIGH_PRECISION_SCALE = 6


def to_decimal(value: Any) -> Decimal:
    """숫자를 Decimal로 변환. float는 str을 거쳐 이진 오차를 피한다."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize(value: Decimal | float, scale: int) -> Decimal:
    """scale 자릿수로 반올림 (ROUND_HALF_UP)."""
    value = to_decimal(value)
    exponent = Decimal(1).scaleb(-scale)
    with localcontext() as ctx:
        # 정수부 자릿수가 기본 정밀도(28)를 넘어도 반올림 가능하도록
        ctx.prec = max(ctx.prec, value.adjusted() + scale + 2)
        return value.quantize(exponent, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ScalePolicy:
    """보고 시점 반올림 정책. config.yaml의 scale 섹션(ScaleConfig)에서 생성."""
    currency_scale: int = CURRENCY_SCALE
    percent_scale: int = PERCENT_SCALE
    high_precision_scale: int = HIGH_PRECISION_SCALE

    @classmethod
    def from_config(cls, config) -> "ScalePolicy":
        return cls(
            currency_scale=config.currency_scale,
            percent_scale=config.percent_scale,
            high_precision_scale=config.high_precision_scale,
        )

    def currency(self, value: Decimal | float) -> Decimal:
        return quantize(value, self.currency_scale)

    def percent(self, value: Decimal | float) -> Decimal:
        return quantize(value, self.percent_scale)

    def precise(self, value: Decimal | float) -> Decimal:
        return quantize(value, self.high_precision_scale)


DEFAULT_SCALE_POLICY = ScalePolicy()
