"""
로깅 모듈.

[ 역할 ]
    백테스트 로거 설정. 매매 내역(DEBUG), 건너뛴 종목/가격 없는 날(WARNING),
    실행 시작/종료(INFO)를 파일 + 콘솔에 기록.
    하위 모듈은 logging.getLogger("pe_backtest.<영역>")을 사용하므로
    루트 로거 "pe_backtest" 하나만 설정하면 전부 전파된다.

[ 로그 파일 위치 ]
    {log_dir}/{name}_{YYYYMMDD}.log (예: logs/pe_backtest_20240601.log)

[ 호출하는 곳 ]
    - run_backtest.py에서 setup_logger_from_config(config) 호출
    - backtest/engine.py, backtest/simulator.py에서 logging.getLogger("pe_backtest.backtest") 사용
    - data/*.py에서 logging.getLogger("pe_backtest.data") 사용
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from pe_backtest.utils.config import Config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# DEBUG가 아니면 드라이버 로그는 WARNING 이상만
LIBRARY_LOGGERS = ("clickhouse_connect", "urllib3")


def setup_logger(
    name: str = "pe_backtest",
    level: str = "INFO",
    log_dir: str | None = "logs",
    console: bool = True,
) -> logging.Logger:
    """로거 설정. 파일 핸들러(일별) + 콘솔 핸들러 등록.

    log_dir가 None이면 파일 핸들러 없이 콘솔만 사용.
    이미 핸들러가 있으면 레벨만 갱신한다.
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"알 수 없는 로그 레벨: {level}")

    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    library_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for library in LIBRARY_LOGGERS:
        logging.getLogger(library).setLevel(library_level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # 파일 핸들러
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y%m%d")
        file_handler = logging.FileHandler(
            log_path / f"{name}_{today}.log",
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # 콘솔 핸들러
    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def setup_logger_from_config(config: Config, console: bool = True) -> logging.Logger:
    """config의 log_level / log_dir로 "pe_backtest" 로거 설정. log_dir가 비어 있으면 콘솔만."""
    return setup_logger(
        level=config.log_level,
        log_dir=config.log_dir or None,
        console=console,
    )
