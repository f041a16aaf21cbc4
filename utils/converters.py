"""
Модуль: Конвертеры данных для NFT Staking Rewards Engine
Описание: Время цикла и индекс тика, форматирование очков
Зависимости: decimal, datetime
Автор: NFT Staking Rewards Team
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from config.constants import TICK_SECONDS

EPOCH = datetime(1970, 1, 1)


class TimeConverter:
    """Конвертер для работы со временем (naive UTC во всём движке)"""

    @staticmethod
    def utc_now() -> datetime:
        """Текущее время UTC без tzinfo"""
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def to_naive_utc(dt: datetime) -> datetime:
        """Aware datetime → naive UTC; naive считается уже UTC"""
        if dt.tzinfo is not None:
            return dt.astimezone(timezone.utc).replace(tzinfo=None)
        return dt

    @staticmethod
    def tick_index(dt: datetime) -> int:
        """
        Индекс тика планировщика: floor(epoch_seconds / 600)

        Args:
            dt: Время цикла

        Returns:
            int: Номер тика
        """
        seconds = (TimeConverter.to_naive_utc(dt) - EPOCH).total_seconds()
        return int(seconds // TICK_SECONDS)


class PointsConverter:
    """Очки наград"""

    @staticmethod
    def to_decimal(value: Union[str, int, float, Decimal, None]) -> Decimal:
        if value is None:
            return Decimal("0")
        return Decimal(str(value))

    @staticmethod
    def format_points(value: Union[str, int, float, Decimal, None], precision: int = 4) -> str:
        """Decimal → строка с фиксированной точностью"""
        quantum = Decimal(10) ** -precision
        return str(PointsConverter.to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def utc_now() -> datetime:
    return TimeConverter.utc_now()


def tick_index(dt: datetime) -> int:
    return TimeConverter.tick_index(dt)


def format_points(value, precision: int = 4) -> str:
    return PointsConverter.format_points(value, precision)
