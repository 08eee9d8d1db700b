"""
로깅 모듈.

[ 역할 ]
    "trading_journal" 루트 로거에 파일 + 콘솔 핸들러를 설정하고,
    각 엔진이 쓸 하위 로거를 만들어 준다.
    FIFO 재계산, 백테스트 실행 내역, 데이터 무결성 오류 등이 기록된다.

[ 로그 파일 위치 ]
    {log_dir}/{name}_{YYYYMMDD}.log (예: logs/trading_journal_20240601.log)

[ 로거 계층 ]
    trading_journal.fifo      ← accounting/fifo.py
    trading_journal.analysis  ← analysis/metrics.py
    trading_journal.backtest  ← backtest/engine.py
    하위 로거는 핸들러를 따로 갖지 않고 루트 로거로 전파된다.

[ 호출하는 곳 ]
    - run_backtest.py에서 setup_logger() 호출 (config.yaml의 log_level, log_dir)
    - 각 엔진 모듈 상단에서 get_logger("<컴포넌트>")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

ROOT_LOGGER = "trading_journal"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(component: str) -> logging.Logger:
    """엔진별 하위 로거. get_logger("fifo") → "trading_journal.fifo"."""
    return logging.getLogger(f"{ROOT_LOGGER}.{component}")


def _daily_file_handler(log_dir: str | Path, name: str) -> logging.FileHandler:
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    today = datetime.now().strftime("%Y%m%d")
    return logging.FileHandler(log_path / f"{name}_{today}.log", encoding="utf-8")


def setup_logger(
    name: str = ROOT_LOGGER,
    level: str | int = "INFO",
    log_dir: str | Path | None = "logs",
    console: bool = True,
) -> logging.Logger:
    """로거 설정. 일별 파일 핸들러 + 콘솔(stdout) 핸들러 등록.

    이미 핸들러가 있으면 레벨만 바꾸고 그대로 반환한다 (비교 모드 등에서 반복 호출 대비).
    log_dir이 None이면 파일 로그를 남기지 않는다.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level if isinstance(level, int) else logging.getLevelName(level.upper()))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = []
    if log_dir is not None:
        handlers.append(_daily_file_handler(log_dir, name))
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
