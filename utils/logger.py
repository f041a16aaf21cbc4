"""
Модуль: Система логирования для NFT Staking Rewards Engine
Описание: Настройка логирования с ротацией файлов и форматированием
Зависимости: logging, pathlib
Автор: NFT Staking Rewards Team
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from config.settings import get_settings

ROOT_LOGGER_NAME = "Staking"


class ColoredFormatter(logging.Formatter):
    """Цветной форматтер для консольного вывода"""

    # Цветовые коды ANSI
    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m'  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        record = logging.makeLogRecord(record.__dict__)
        log_color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{log_color}{record.levelname}{self.RESET}"
        return super().format(record)


class StakingLogger:
    """Централизованная система логирования движка наград"""

    def __init__(self, name: str = ROOT_LOGGER_NAME,
                 log_level: Optional[str] = None,
                 log_file: Optional[str] = None):
        self.logger = logging.getLogger(name)

        # Предотвращаем дублирование хендлеров
        if self.logger.handlers:
            return

        if log_level is None or log_file is None:
            settings = get_settings()
            log_level = log_level or settings.log_level
            log_file = log_file or settings.log_file

        self.logger.setLevel(getattr(logging, log_level))

        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_formatter = logging.Formatter(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_formatter = ColoredFormatter(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%H:%M:%S'
        )

        # Файловый хендлер с ротацией
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_path,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(file_formatter)
        file_handler.setLevel(logging.DEBUG)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(console_formatter)
        console_handler.setLevel(getattr(logging, log_level))

        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)
        self.logger.propagate = False

        self.logger.debug(f"📁 Log file: {log_path.absolute()} | level: {log_level}")

    def get_logger(self) -> logging.Logger:
        """Получить настроенный логгер"""
        return self.logger

    def log_accrual(self, wallet: str, tier: str, points, source: str, source_id: int):
        """Начисление очков"""
        self.logger.info(f"💰 ACCRUAL: {wallet} | +{points} {tier} | {source}#{source_id}")

    def log_forfeiture(self, stake_id: int, wallet: str, reason: str, detail: str = ""):
        """Потеря стейка"""
        self.logger.warning(f"🚫 FORFEIT: stake#{stake_id} | {wallet} | {reason} | {detail}")

    def log_group_transition(self, group_id: int, old_status: str, new_status: str, reason: str):
        """Переход статуса когорты"""
        self.logger.info(f"📦 GROUP#{group_id}: {old_status} → {new_status} | {reason}")

    def log_gamble(self, group_id: int, wallet: str, outcome: str):
        """Результат gamble"""
        self.logger.info(f"🎲 GAMBLE: group#{group_id} | {wallet} | {outcome.upper()}")

    def log_cycle_summary(self, summary: dict):
        """Итоги цикла"""
        self.logger.info("=" * 60)
        for key, value in summary.items():
            self.logger.info(f"    📌 {key}: {value}")
        self.logger.info("=" * 60)

    def log_error_with_context(self, error: Exception, context: dict):
        """Логирование ошибок с контекстом"""
        self.logger.error(f"❌ ERROR: {type(error).__name__}: {error}")
        self.logger.error(f"📍 Context: {context}")


_root: Optional[StakingLogger] = None


def configure_logging(log_level: Optional[str] = None, log_file: Optional[str] = None) -> StakingLogger:
    """Явная настройка корневого логгера (вызывается точками входа)"""
    global _root
    if _root is None:
        _root = StakingLogger(ROOT_LOGGER_NAME, log_level=log_level, log_file=log_file)
    elif log_level:
        _root.logger.setLevel(getattr(logging, log_level))
    return _root


def get_domain_logger() -> StakingLogger:
    """Корневой логгер со специализированными методами"""
    return configure_logging()


def get_logger(name: str) -> logging.Logger:
    """Получить логгер для конкретного модуля"""
    configure_logging()
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging_for_external_libs():
    """Настройка логирования для внешних библиотек"""
    noisy_loggers = ['urllib3', 'requests', 'sqlalchemy.engine', 'uvicorn.access', 'schedule']

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


setup_logging_for_external_libs()
