"""
Модуль: Константы NFT Staking Rewards Engine
Описание: Фиксированные доменные константы: уровни, ставки, окна времени, статусы
Автор: NFT Staking Rewards Team
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, Final

# 🏗️ Системные константы
ENGINE_NAME: Final[str] = "NFT Staking Rewards Engine"
ENGINE_VERSION: Final[str] = "1.0.0"

# 🔗 Sui JSON-RPC
SUI_RPC_URL: Final[str] = "https://fullnode.mainnet.sui.io:443"
KIOSK_OWNER_CAP_TYPE: Final[str] = "0x2::kiosk::KioskOwnerCap"
KIOSK_LISTING_TYPE_MARKER: Final[str] = "::kiosk::Listing"
RPC_PAGE_LIMIT: Final[int] = 50

# ⏱️ Планировщик: один тик каждые 10 минут
CYCLE_INTERVAL_MINUTES: Final[int] = 10
TICKS_PER_HOUR: Final[int] = 60 // CYCLE_INTERVAL_MINUTES
TICK_SECONDS: Final[int] = CYCLE_INTERVAL_MINUTES * 60

# 🤝 Рефералы и когорты
REFERRAL_MATURATION_DAYS: Final[int] = 10
VESTING_PERIOD_DAYS: Final[int] = 10
GAMBLE_EXTENSION_DAYS: Final[int] = 10
GAMBLE_WIN_PROBABILITY: Final[float] = 0.10
COHORT_SIZE: Final[int] = 3

# 📅 Параметры стейка
MIN_DURATION_DAYS: Final[int] = 30
MAX_DURATION_DAYS: Final[int] = 1095  # 3 года
DAYS_PER_MONTH: Final[int] = 30
DURATION_TOLERANCE_DAYS: Final[int] = 5
ALLOWED_DURATION_MONTHS: Final[tuple] = (1, 2, 3)


class Tier(Enum):
    """Уровни NFT (закрытый набор)"""
    VOTER = "Voter"
    GOVERNOR = "Governor"
    COUNCIL = "Council"

    @classmethod
    def parse(cls, value) -> "Tier":
        """Строка → Tier, строго по значению"""
        if isinstance(value, cls):
            return value
        for tier in cls:
            if tier.value == value:
                return tier
        raise ValueError(f"Unknown tier: {value!r}")


# Таблица уровень → ставка в час и колонка аккумулятора
TIER_RULES: Final[Dict[Tier, Dict]] = {
    Tier.VOTER: {
        "hourly_rate": Decimal("12"),      # 288/день
        "points_column": "voter_points",
    },
    Tier.GOVERNOR: {
        "hourly_rate": Decimal("60"),      # 1 440/день
        "points_column": "governor_points",
    },
    Tier.COUNCIL: {
        "hourly_rate": Decimal("300"),     # 7 200/день
        "points_column": "council_points",
    },
}

# Множитель по длительности стейка (месяцы)
DURATION_MULTIPLIERS: Final[Dict[int, Decimal]] = {
    1: Decimal("1.0"),
    2: Decimal("1.5"),
    3: Decimal("2.0"),
}


class StakeStatus(Enum):
    """Статусы стейка"""
    ACTIVE = "active"
    COMPLETED = "completed"
    FORFEITED = "forfeited"


class ReferralStatus(Enum):
    """Статусы реферала"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FORFEITED = "forfeited"


class GroupStatus(Enum):
    """Статусы когорты (referral group)"""
    VESTING = "vesting"
    CLAIMABLE = "claimable"
    FORFEITED = "forfeited"


class GambleStatus(Enum):
    """Статусы gamble для когорты"""
    OFFERED = "offered"
    WON = "won"
    LOST = "lost"


class GrantStatus(Enum):
    """Статусы ручного гранта"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class ForfeitureReason(Enum):
    """Причины потери стейка"""
    LISTED = "listed"
    TRANSFERRED = "transferred"


# Разрешённые переходы статусов (терминальные состояния без выходов)
STAKE_TRANSITIONS: Final[Dict[StakeStatus, frozenset]] = {
    StakeStatus.ACTIVE: frozenset({StakeStatus.COMPLETED, StakeStatus.FORFEITED}),
    StakeStatus.COMPLETED: frozenset(),
    StakeStatus.FORFEITED: frozenset(),
}

REFERRAL_TRANSITIONS: Final[Dict[ReferralStatus, frozenset]] = {
    ReferralStatus.PENDING: frozenset({ReferralStatus.CONFIRMED, ReferralStatus.FORFEITED}),
    # Потеря стейка перекрывает подтверждение
    ReferralStatus.CONFIRMED: frozenset({ReferralStatus.FORFEITED}),
    ReferralStatus.FORFEITED: frozenset(),
}

GROUP_TRANSITIONS: Final[Dict[GroupStatus, frozenset]] = {
    GroupStatus.VESTING: frozenset({GroupStatus.CLAIMABLE, GroupStatus.FORFEITED}),
    GroupStatus.CLAIMABLE: frozenset(),
    GroupStatus.FORFEITED: frozenset(),
}

GAMBLE_TRANSITIONS: Final[Dict[GambleStatus, frozenset]] = {
    GambleStatus.OFFERED: frozenset({GambleStatus.WON, GambleStatus.LOST}),
    GambleStatus.WON: frozenset(),
    GambleStatus.LOST: frozenset(),
}
