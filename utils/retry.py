"""
Модуль: Retry декораторы для RPC операций
Описание: Retry стратегии с экспоненциальным backoff только для временных ошибок
Зависимости: tenacity, functools, time
Автор: NFT Staking Rewards Team
"""

import functools
import time
from typing import Callable, Optional

from tenacity import (
    Retrying, stop_after_attempt, wait_exponential, wait_random,
    retry_if_exception_type, RetryCallState
)

from utils.logger import get_logger

logger = get_logger("Retry")


class RetryableError(Exception):
    """Временная ошибка: таймаут, обрыв соединения, 429/5xx"""

    def __init__(self, message: str, error_type: str = "unknown"):
        super().__init__(message)
        self.error_type = error_type


def classify_http_status(status_code: int) -> Optional[str]:
    """Тип временной ошибки по HTTP статусу (None: ошибка постоянная)"""
    if status_code == 429:
        return "rate_limit"
    if status_code in (500, 502, 503, 504):
        return "temporary_node"
    return None


class RetryCounter:
    """Счетчик retry попыток для мониторинга"""

    def __init__(self):
        self.counters = {}
        self.reset_time = time.time()

    def increment(self, operation: str, error_type: str):
        """Увеличить счетчик для операции и типа ошибки"""
        key = f"{operation}:{error_type}"
        self.counters[key] = self.counters.get(key, 0) + 1

    def get_stats(self) -> dict:
        """Получить статистику retry попыток"""
        total_retries = sum(self.counters.values())
        uptime_hours = (time.time() - self.reset_time) / 3600

        return {
            "total_retries": total_retries,
            "retries_per_hour": total_retries / uptime_hours if uptime_hours > 0 else 0,
            "by_operation": dict(self.counters),
            "uptime_hours": uptime_hours
        }

    def reset(self):
        """Сбросить счетчики"""
        self.counters.clear()
        self.reset_time = time.time()


retry_counter = RetryCounter()


def _log_retry_attempt(operation: str, counter: RetryCounter):
    def _before_sleep(retry_state: RetryCallState):
        exception = retry_state.outcome.exception()
        error_type = getattr(exception, "error_type", "unknown")
        counter.increment(operation, error_type)
        logger.warning(
            f"⏳ {operation} attempt {retry_state.attempt_number} failed ({error_type}), "
            f"retrying: {exception}"
        )
    return _before_sleep


def api_call_retry(max_attempts: int = 3,
                   base_delay: float = 0.5,
                   max_delay: float = 5.0,
                   counter: Optional[RetryCounter] = None):
    """
    Retry для RPC вызовов

    Повторяются только RetryableError; остальные исключения пробрасываются
    сразу. После исчерпания попыток пробрасывается последняя RetryableError.

    Args:
        max_attempts: Максимальное количество попыток
        base_delay: Базовая задержка в секундах
        max_delay: Максимальная задержка в секундах
        counter: Счетчик retry (по умолчанию глобальный)
    """
    counter = counter or retry_counter

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            retrying = Retrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(multiplier=base_delay, max=max_delay) + wait_random(0, base_delay / 10),
                retry=retry_if_exception_type(RetryableError),
                before_sleep=_log_retry_attempt(func.__name__, counter),
                reraise=True,
            )
            return retrying(func, *args, **kwargs)
        return wrapper
    return decorator
