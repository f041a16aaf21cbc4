"""
Модуль: Валидаторы данных для NFT Staking Rewards Engine
Описание: Валидация Sui адресов и object id, уровней, длительности стейка и кодов
Зависимости: re
Автор: NFT Staking Rewards Team
"""

import re
from typing import Optional, Tuple

from config.constants import (
    Tier, MIN_DURATION_DAYS, MAX_DURATION_DAYS, DAYS_PER_MONTH,
    DURATION_TOLERANCE_DAYS, ALLOWED_DURATION_MONTHS
)
from core.errors import ValidationError
from utils.logger import get_logger

logger = get_logger("Validators")

# 0x + до 64 hex символов (Sui допускает короткую запись, например 0x2)
SUI_ID_PATTERN = re.compile(r'^0x[a-fA-F0-9]{1,64}$')
REFERRAL_CODE_MAX_LENGTH = 64


class AddressValidator:
    """Валидатор Sui адресов и object id"""

    @staticmethod
    def is_valid_address(address: str) -> bool:
        """Проверить корректность адреса"""
        if not isinstance(address, str):
            return False
        return bool(SUI_ID_PATTERN.match(address.strip()))

    @staticmethod
    def normalize_address(address: str, code: str = "invalid_wallet") -> str:
        """Нормализовать адрес к нижнему регистру"""
        if not AddressValidator.is_valid_address(address):
            raise ValidationError(f"Invalid address format: {address!r}", code)
        return address.strip().lower()


class StakeValidator:
    """Валидатор параметров стейка"""

    @staticmethod
    def validate_tier(value) -> Tier:
        try:
            return Tier.parse(value)
        except ValueError:
            raise ValidationError(
                f"Tier must be one of {[t.value for t in Tier]}, got {value!r}", "invalid_tier"
            )

    @staticmethod
    def validate_duration(duration_days, duration_months) -> Tuple[int, int]:
        """
        Проверка длительности стейка.

        Расхождение duration_days с duration_months*30 больше допуска
        не отклоняется: duration_days нормализуется к duration_months*30.

        Returns:
            Tuple[int, int]: (duration_days, duration_months)
        """
        try:
            months = int(duration_months)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid duration_months: {duration_months!r}", "invalid_duration_months")
        if isinstance(duration_months, bool) or months not in ALLOWED_DURATION_MONTHS:
            raise ValidationError(
                f"duration_months must be one of {list(ALLOWED_DURATION_MONTHS)}, got {duration_months!r}",
                "invalid_duration_months"
            )

        try:
            days = int(duration_days)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid duration_days: {duration_days!r}", "invalid_duration")
        if isinstance(duration_days, bool) or not MIN_DURATION_DAYS <= days <= MAX_DURATION_DAYS:
            raise ValidationError(
                f"duration_days must be within [{MIN_DURATION_DAYS}, {MAX_DURATION_DAYS}], got {duration_days!r}",
                "invalid_duration"
            )

        expected = months * DAYS_PER_MONTH
        if abs(days - expected) > DURATION_TOLERANCE_DAYS:
            logger.warning(
                f"⚠️ duration_days={days} does not match duration_months={months}, normalized to {expected}"
            )
            days = expected

        return days, months

    @staticmethod
    def validate_referral_code(code: Optional[str]) -> Optional[str]:
        """Пустой код → None"""
        if code is None:
            return None
        if not isinstance(code, str):
            raise ValidationError(f"Invalid referral code: {code!r}", "invalid_referral_code")
        code = code.strip()
        if not code:
            return None
        if len(code) > REFERRAL_CODE_MAX_LENGTH:
            raise ValidationError("Referral code is too long", "invalid_referral_code")
        return code


def validate_wallet(wallet: str) -> str:
    return AddressValidator.normalize_address(wallet, "invalid_wallet")


def validate_asset_id(asset_id: str) -> str:
    return AddressValidator.normalize_address(asset_id, "invalid_asset_id")

