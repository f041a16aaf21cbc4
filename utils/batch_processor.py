"""
NFT Staking Rewards Engine - Batch Processor

Массовая обработка независимых задач в пуле потоков:
- Ограниченный параллелизм
- Таймаут на элемент
- Сбой одного элемента не прерывает остальные
- Прогресс-трекинг

Автор: NFT Staking Rewards Team
Версия: 1.0.0
"""

import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Hashable, Iterable, List, Optional

from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class BatchResult:
    """Результат обработки одного элемента"""
    task_id: Hashable
    success: bool
    result: Any = None
    error: Optional[str] = None
    processing_time: float = 0.0
    completed_at: datetime = field(default_factory=datetime.now)


@dataclass
class BatchProgress:
    """Прогресс батч-обработки"""
    total_tasks: int
    completed_tasks: int = 0
    failed_tasks: int = 0

    @property
    def success_rate(self) -> float:
        """Процент успешных операций"""
        processed = self.completed_tasks + self.failed_tasks
        if processed == 0:
            return 100.0
        return (self.completed_tasks / processed) * 100.0


class BatchProcessor:
    """Обработчик массовых операций"""

    def __init__(self, max_workers: int = 5, item_timeout: Optional[float] = None):
        self.max_workers = max(1, max_workers)
        self.item_timeout = item_timeout
        self.progress: Optional[BatchProgress] = None
        logger.debug(f"BatchProcessor: workers={self.max_workers}, item_timeout={item_timeout}")

    def _timed_call(self, fn: Callable, item: Any):
        started = time.time()
        return fn(item), time.time() - started

    def run(self, items: Iterable[Any], fn: Callable[[Any], Any],
            key: Optional[Callable[[Any], Hashable]] = None) -> List[BatchResult]:
        """
        Выполнить fn для каждого элемента.

        Args:
            items: Элементы для обработки
            fn: Функция обработки одного элемента
            key: task_id элемента (по умолчанию порядковый номер)

        Returns:
            List[BatchResult]: Результаты в порядке входных элементов
        """
        items = list(items)
        self.progress = BatchProgress(total_tasks=len(items))
        if not items:
            return []

        key = key or (lambda item: None)
        results: List[BatchResult] = []

        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(items)))
        try:
            futures = [(index, item, executor.submit(self._timed_call, fn, item))
                       for index, item in enumerate(items)]

            for index, item, future in futures:
                task_id = key(item)
                if task_id is None:
                    task_id = index
                try:
                    value, elapsed = future.result(timeout=self.item_timeout)
                    results.append(BatchResult(task_id=task_id, success=True,
                                               result=value, processing_time=elapsed))
                    self.progress.completed_tasks += 1
                except FutureTimeoutError:
                    future.cancel()
                    logger.warning(f"⏱️ Batch item {task_id} timed out after {self.item_timeout}s")
                    results.append(BatchResult(task_id=task_id, success=False,
                                               error=f"timeout after {self.item_timeout}s"))
                    self.progress.failed_tasks += 1
                except Exception as e:
                    logger.warning(f"⚠️ Batch item {task_id} failed: {type(e).__name__}: {e}")
                    results.append(BatchResult(task_id=task_id, success=False, error=str(e)))
                    self.progress.failed_tasks += 1
        finally:
            # Зависшие задачи не блокируют вызывающего
            executor.shutdown(wait=False, cancel_futures=True)

        logger.debug(
            f"📦 Batch done: {self.progress.completed_tasks} ok, "
            f"{self.progress.failed_tasks} failed ({self.progress.success_rate:.1f}%)"
        )
        return results
