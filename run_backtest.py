"""
백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml의 전략 + 샘플 데이터)
    python run_backtest.py

    # 전략 지정
    python run_backtest.py --strategy rsi
    python run_backtest.py --strategy ma_cross -p ma_type=ema -p short_period=10

    # CSV 데이터 사용 (columns: date, open, high, low, close, volume)
    python run_backtest.py --csv data/005930.csv --ticker 005930.KS

    # 여러 전략 비교
    python run_backtest.py --compare ma_cross rsi bollinger momentum macd

    # 등록된 전략 목록 확인
    python run_backtest.py --list
"""

import argparse
import zlib
from datetime import date
from pathlib import Path

import numpy as np
import pandas as pd

from trading_journal.backtest.engine import BacktestEngine, BacktestResult
from trading_journal.core.errors import TradingJournalError
from trading_journal.core.price_data import PriceBar, bars_from_dataframe
from trading_journal.strategies import STRATEGY_REGISTRY, create_strategy, list_strategies
from trading_journal.utils.config import Config
from trading_journal.utils.logger import setup_logger
from trading_journal.utils.scale import ScalePolicy


def generate_sample_data(
    ticker: str,
    start_date: date,
    end_date: date,
    initial_price: float = 70000,
    volatility: float = 0.02,
) -> pd.DataFrame:
    """백테스트용 샘플 주가 데이터 생성. 같은 티커는 항상 같은 데이터."""
    rng = np.random.default_rng(zlib.crc32(ticker.encode("utf-8")))

    dates = pd.bdate_range(start=start_date, end=end_date)
    n = len(dates)

    returns = rng.normal(0.0002, volatility, n)
    closes = initial_price * np.cumprod(1 + returns)

    return pd.DataFrame({
        "date": dates.date,
        "open": np.round(closes * (1 + rng.normal(0, 0.005, n)), 0),
        "high": np.round(closes * (1 + np.abs(rng.normal(0, 0.01, n))), 0),
        "low": np.round(closes * (1 - np.abs(rng.normal(0, 0.01, n))), 0),
        "close": np.round(closes, 0),
        "volume": rng.lognormal(12, 1, n).astype(int),
    })


def parse_param(param_str: str) -> tuple[str, object]:
    """'key=value' 문자열을 파싱하여 (key, value) 반환. 숫자면 자동 변환."""
    key, _, value = param_str.partition("=")
    key = key.strip()
    value = value.strip()

    # 숫자 자동 변환
    try:
        if "." in value:
            return key, float(value)
        return key, int(value)
    except ValueError:
        # bool 변환
        if value.lower() in ("true", "yes"):
            return key, True
        if value.lower() in ("false", "no"):
            return key, False
        return key, value


def load_bars(config: Config, csv_path: str | None, ticker: str) -> list[PriceBar]:
    """CSV 파일 또는 샘플 데이터에서 봉 데이터 로드."""
    if csv_path:
        print(f"CSV 데이터 로드 중: {csv_path}")
        df = pd.read_csv(csv_path)
    else:
        print("샘플 데이터 생성 중...")
        df = generate_sample_data(
            ticker=ticker,
            start_date=date.fromisoformat(config.backtest.start_date),
            end_date=date.fromisoformat(config.backtest.end_date),
        )

    bars = bars_from_dataframe(df)
    print(f"  {ticker}: {len(bars)}일 데이터")
    return bars


def run_single(
    config: Config,
    strategy_name: str,
    strategy_params: dict,
    bars: list[PriceBar],
    ticker: str,
) -> BacktestResult | None:
    """단일 전략 백테스트 실행. 실패하면 사유 출력 후 None."""
    try:
        strategy = create_strategy(strategy_name, params=strategy_params)
        engine = BacktestEngine(
            config.backtest,
            risk_config=config.risk,
            scale=ScalePolicy.from_config(config.scale),
        )
        return engine.run_backtest(strategy, bars, symbol=ticker)
    except TradingJournalError as e:
        print(f"\n오류 ({strategy_name}): {e}")
        return None


def print_single_result(result: BacktestResult):
    """단일 전략 결과 출력."""
    report = result.to_dict()
    print(f"\n[전략: {result.strategy_name} / {result.symbol}]")
    print(f"초기 자금: {report['initial_cash']:,}원 → 최종 평가금액: {report['final_equity']:,}원 "
          f"({report['total_return_pct']}%)")
    if report["benchmark_return_pct"] is not None:
        print(f"단순 보유(buy & hold) 수익률: {report['benchmark_return_pct']}%")
    print(result.metrics.summary())

    stats = report["trade_stats"]
    streaks = report["streaks"]
    print(f"\n총 거래 횟수: {stats['total_trades']} (승 {stats['winning_trades']} / 패 {stats['losing_trades']})")
    print(f"  승률: {stats['win_rate']}%, 기대값: {stats['expectancy']:,}원")
    print(f"  최대 연승: {streaks['max_win_streak']}, 최대 연패: {streaks['max_loss_streak']}")
    if result.forced_close:
        print("  ※ 기간 종료 시 보유 포지션을 강제 청산함")

    if report["monthly_performance"]:
        print("\n월별 성과 (청산월 기준):")
        for m in report["monthly_performance"]:
            print(f"  {m['month']}: {m['trade_count']}건, {m['realized_pnl']:,}원 ({m['return_pct']}%)")

    if report["trades"]:
        print("\n최근 거래 (최대 5건):")
        for t in report["trades"][-5:]:
            pnl = t["realized_pnl"]
            pnl_str = f"+{pnl:,}" if pnl > 0 else f"{pnl:,}"
            print(f"  [{t['entry_date']} → {t['exit_date']}] {t['quantity']}주 "
                  f"{t['entry_price']:,} → {t['exit_price']:,}원 {pnl_str}원 ({t['exit_reason']})")


def _benchmark_cell(result: BacktestResult) -> str:
    if result.benchmark_return_pct is None:
        return "-"
    return f"{result.scale.percent(result.benchmark_return_pct)}%"


def print_comparison(results: dict[str, BacktestResult], ticker: str, config: Config):
    """여러 전략 비교 결과 출력."""
    period = f"{config.backtest.start_date} ~ {config.backtest.end_date}"

    names = list(results.keys())
    col_width = max(14, max(len(n) for n in names) + 2)

    print(f"\n{'=' * (20 + col_width * len(names))}")
    print(f"전략 비교 결과 ({ticker}, {period})")
    print(f"{'=' * (20 + col_width * len(names))}")

    # 헤더
    header = f"{'':>20}" + "".join(f"{n:>{col_width}}" for n in names)
    print(header)
    print("-" * len(header))

    # 지표 행
    rows = [
        ("총 수익률", lambda r: f"{r.metrics.total_return}%"),
        ("CAGR", lambda r: f"{r.metrics.cagr}%"),
        ("단순 보유 수익률", _benchmark_cell),
        ("샤프 비율", lambda r: f"{r.metrics.sharpe_ratio}"),
        ("소르티노 비율", lambda r: f"{r.metrics.sortino_ratio}"),
        ("최대 낙폭(MDD)", lambda r: f"{r.metrics.max_drawdown}%"),
        ("VaR95 (일)", lambda r: f"{r.metrics.var95.daily}%"),
        ("총 거래 횟수", lambda r: f"{r.trade_stats.total_trades}"),
        ("승률", lambda r: f"{r.metrics.win_rate}%"),
        ("수익 팩터", lambda r: f"{r.metrics.profit_factor}"),
        ("최대 연속 수익", lambda r: f"{r.streak_stats.max_win_streak}"),
        ("최대 연속 손실", lambda r: f"{r.streak_stats.max_loss_streak}"),
        ("리스크 등급", lambda r: r.metrics.risk_level.value),
    ]

    for label, fmt in rows:
        row = f"{label:>20}" + "".join(f"{fmt(results[n]):>{col_width}}" for n in names)
        print(row)

    print(f"{'=' * (20 + col_width * len(names))}")


def main():
    parser = argparse.ArgumentParser(description="주식 백테스트 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--strategy", type=str, default=None, help="전략 이름 (config.yaml 대신 지정)")
    parser.add_argument("-p", "--param", action="append", default=[], help="파라미터 오버라이드 (예: -p long_period=120)")
    parser.add_argument("--csv", type=str, default=None, help="OHLCV CSV 파일 (없으면 샘플 데이터)")
    parser.add_argument("--ticker", type=str, default=None, help="종목 코드 (기본: config의 첫 티커)")
    parser.add_argument("--compare", nargs="+", metavar="STRATEGY", help="여러 전략 비교 (예: --compare ma_cross rsi)")
    parser.add_argument("--list", action="store_true", help="등록된 전략 목록 출력")
    args = parser.parse_args()

    # 전략 목록 출력
    if args.list:
        print("등록된 전략:")
        for name in list_strategies():
            print(f"  - {name}: {STRATEGY_REGISTRY[name]().describe()}")
        return

    # 설정 로드
    config_path = Path(args.config)
    if config_path.exists():
        config = Config.from_yaml(config_path)
    else:
        print(f"설정 파일 없음: {config_path}, 기본값 사용")
        config = Config()

    # 로거
    setup_logger(level=config.log_level, log_dir=config.log_dir)

    ticker = args.ticker or (config.strategy.tickers[0] if config.strategy.tickers else "005930.KS")

    # 데이터 로드 (한 번만)
    bars = load_bars(config, args.csv, ticker)
    if not bars:
        print("\n오류: 백테스트할 데이터가 없습니다.")
        return

    # ─── 비교 모드 ───────────────────────────────────────────────────────
    if args.compare:
        print(f"\n{len(args.compare)}개 전략 비교 실행...")
        results = {}
        for name in args.compare:
            print(f"\n--- {name} 실행 중 ---")
            # 비교 모드에서는 각 전략의 기본 파라미터 사용 (설정 파일 전략은 자기 파라미터 사용)
            params = config.strategy.params if name == config.strategy.name else {}
            result = run_single(config, name, params, bars, ticker)
            if result:
                results[name] = result
        if results:
            print_comparison(results, ticker, config)
        return

    # ─── 단일 실행 모드 ─────────────────────────────────────────────────
    strategy_name = args.strategy or config.strategy.name
    strategy_params = dict(config.strategy.params) if strategy_name == config.strategy.name else {}

    # CLI 파라미터 오버라이드
    for p in args.param:
        key, value = parse_param(p)
        strategy_params[key] = value

    print(f"\n전략: {strategy_name}")
    if args.param:
        print(f"파라미터 오버라이드: {dict(parse_param(p) for p in args.param)}")

    result = run_single(config, strategy_name, strategy_params, bars, ticker)
    if result:
        print_single_result(result)


if __name__ == "__main__":
    main()
