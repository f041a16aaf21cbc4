"""
Модуль: Планировщик циклов
Описание: Периодический запуск StakingManager.run_cycle через schedule
Зависимости: schedule, threading
Автор: NFT Staking Rewards Team
"""

import threading
import time
from typing import Optional

import schedule

from config.constants import CYCLE_INTERVAL_MINUTES
from utils.logger import get_logger

logger = get_logger("CycleScheduler")


class CycleScheduler:
    """
    Запуск цикла каждые interval_minutes.

    Каждый запуск идёт в отдельном потоке; если предыдущий цикл ещё
    выполняется, тик пропускается.
    """

    def __init__(self, manager, interval_minutes: int = CYCLE_INTERVAL_MINUTES, poll_seconds: float = 1.0):
        self.manager = manager
        self.interval_minutes = interval_minutes
        self.poll_seconds = poll_seconds
        self.scheduler = schedule.Scheduler()
        self.scheduler.every(interval_minutes).minutes.do(self.trigger)

        self._running_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.skipped_ticks = 0

    def trigger(self) -> bool:
        """
        Запустить цикл в фоне.

        Returns:
            bool: False, если предыдущий цикл ещё не завершён
        """
        if not self._running_lock.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.warning("⏭️ Previous cycle is still running, tick skipped")
            return False

        worker = threading.Thread(target=self._run_cycle, name="staking-cycle", daemon=True)
        worker.start()
        return True

    def _run_cycle(self):
        try:
            self.manager.run_cycle()
        except Exception as e:
            logger.error(f"❌ Scheduled cycle failed: {type(e).__name__}: {e}")
        finally:
            self._running_lock.release()

    def is_cycle_running(self) -> bool:
        return self._running_lock.locked()

    def run_forever(self, run_immediately: bool = True):
        """Блокирующий цикл планировщика (до stop())"""
        logger.info(f"⏰ Scheduler started: every {self.interval_minutes} min")
        if run_immediately:
            self.trigger()
        while not self._stop_event.is_set():
            self.scheduler.run_pending()
            self._stop_event.wait(self.poll_seconds)
        logger.info("⏹️ Scheduler stopped")

    def start(self, run_immediately: bool = True) -> threading.Thread:
        """Запуск планировщика в фоновом потоке"""
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_forever, args=(run_immediately,), name="cycle-scheduler", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def wait_for_idle(self, timeout: float = 30.0) -> bool:
        """Дождаться завершения текущего цикла"""
        deadline = time.time() + timeout
        while self.is_cycle_running():
            if time.time() >= deadline:
                return False
            time.sleep(0.05)
        return True
