import logging
import sys
from typing import Literal

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Шумные сторонние логгеры: оставляем только предупреждения
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "slowapi")

PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
    '"logger": "%(name)s", "message": "%(message)s"}'
)


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: LogLevel | str = "INFO", json_format: bool = False) -> None:
    """
    Настройка логирования магазина.

    Args:
        level: Уровень логирования (регистр не важен, неизвестный -> INFO)
        json_format: Писать строки в JSON-виде (для продакшена)
    """
    numeric_level = _resolve_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_format:
        formatter = logging.Formatter(JSON_FORMAT)
    else:
        formatter = logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Получить логгер с указанным именем."""
    return logging.getLogger(name)
