import logging
import sys
from datetime import date
from pathlib import Path

from league.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _daily_log_path() -> Path:
    """Today's file under Config.LOG_DIR, e.g. logs/league_engine_20240131.log"""
    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"league_engine_{date.today():%Y%m%d}.log"


def _handlers(level: int):
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)

    # File keeps DEBUG even when the console is at INFO
    daily_file = logging.FileHandler(_daily_log_path(), encoding='utf-8')
    daily_file.setLevel(logging.DEBUG)

    return console, daily_file


def setup_logger(name: str) -> logging.Logger:
    """Logger writing to stdout and the daily engine log. Repeat calls reuse the handlers."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in _handlers(level):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
