"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    전략 파라미터, 백테스트 파라미터, 리스크 등급 임계값, 반올림 스케일, 로깅 설정을 통합 관리.

[ 설정 파일 구조 (config.yaml) ]
    strategy:         → StrategyConfig (전략 이름 + 파라미터)
    backtest:         → BacktestConfig (자금, 수수료, 손절/익절, 체결 시점)
    risk:             → RiskConfig (리스크 등급 임계값, 비율 상한, VaR 파라미터)
    scale:            → ScaleConfig (금액/퍼센트/고정밀 소수점 자릿수)
    log_level:        → "INFO" / "DEBUG"
    log_dir:          → 로그 디렉토리 경로

[ 호출하는 곳 ]
    - run_backtest.py에서 Config.from_yaml()로 로드
    - backtest/engine.py::BacktestEngine 생성 시 config.backtest / config.risk 사용
    - analysis/metrics.py::compute_metrics()가 RiskConfig의 임계값 사용
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class StrategyConfig:
    """전략 설정. config.yaml의 strategy 섹션에 대응.

    전략별 파라미터는 params dict에 자유롭게 넣는다.
    각 전략 클래스의 DEFAULT_PARAMS가 기본값 역할을 하므로,
    여기서는 오버라이드할 값만 지정하면 된다.
    """
    name: str = "ma_cross"
    tickers: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응."""
    start_date: str = "2024-01-01"
    end_date: str = "2024-12-31"
    initial_cash: float = 10_000_000
    commission_rate: float = 0.00015    # 0.015%
    slippage_rate: float = 0.001        # 0.1%
    position_size_pct: float = 100.0    # 진입 시 가용 현금 대비 투자 비율 (%)
    stop_loss_pct: float | None = None  # 진입가 대비 손절 비율 (%), None이면 미사용
    take_profit_pct: float | None = None
    execution_lag: str = "close"        # "close" (당일 종가) / "next_open" (익일 시가)
    risk_free_rate: float = 0.03        # 연간 무위험 이자율
    account_id: str = "backtest"


@dataclass
class RiskConfig:
    """리스크 지표 설정. config.yaml의 risk 섹션에 대응.

    변동성/MDD 임계값은 퍼센트 단위 (20.0 = 20%).
    """
    volatility_high_pct: float = 20.0
    volatility_medium_pct: float = 10.0
    max_drawdown_high_pct: float = 20.0
    max_drawdown_medium_pct: float = 10.0
    sharpe_low: float = 0.5
    sharpe_medium: float = 1.0
    max_ratio_value: float = 10.00
    max_sortino_value: float = 999.99
    var_z_score: float = 1.645          # 95% 신뢰수준
    var_confidence: float = 0.95
    weekly_scaling_days: int = 5        # √t 규칙
    monthly_scaling_days: int = 21


@dataclass
class ScaleConfig:
    """반올림 스케일 설정. config.yaml의 scale 섹션에 대응."""
    currency_scale: int = 0
    percent_scale: int = 2
    high_precision_scale: int = 6


def _section(section_cls, data: dict[str, Any] | None):
    """dataclass에 정의된 키만 골라 섹션 객체 생성."""
    data = data or {}
    return section_cls(**{
        k: v for k, v in data.items()
        if k in section_cls.__dataclass_fields__
    })


@dataclass
class Config:
    """전체 설정. from_yaml() 또는 from_json()으로 파일에서 로드."""
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    scale: ScaleConfig = field(default_factory=ScaleConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """YAML 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls._from_dict(data or {})

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        """JSON 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """딕셔너리에서 Config 생성."""
        strategy_data = data.get("strategy") or {}

        # strategy 섹션 파싱: name, tickers는 직접 필드, 나머지는 모두 params로
        strategy_name = strategy_data.get("name", "ma_cross")
        strategy_tickers = strategy_data.get("tickers", [])
        # params가 명시적으로 있으면 그것을 사용, 없으면 name/tickers 외 나머지를 params로
        if "params" in strategy_data:
            strategy_params = strategy_data["params"] or {}
        else:
            strategy_params = {
                k: v for k, v in strategy_data.items()
                if k not in ("name", "tickers")
            }
        strategy = StrategyConfig(
            name=strategy_name,
            tickers=strategy_tickers,
            params=strategy_params,
        )

        return cls(
            strategy=strategy,
            backtest=_section(BacktestConfig, data.get("backtest")),
            risk=_section(RiskConfig, data.get("risk")),
            scale=_section(ScaleConfig, data.get("scale")),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환."""
        return asdict(self)

    def save_yaml(self, path: str | Path) -> None:
        """YAML 파일로 저장."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False)
