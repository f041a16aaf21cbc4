"""
NFT Staking Rewards Engine - Status transitions

Проверка переходов статусов сущностей по таблицам из config.constants.
"""

from enum import Enum
from typing import Dict, List

from config.constants import (
    STAKE_TRANSITIONS, REFERRAL_TRANSITIONS, GROUP_TRANSITIONS, GAMBLE_TRANSITIONS,
    StakeStatus, ReferralStatus, GroupStatus, GambleStatus
)
from core.errors import IllegalTransitionError

_TABLES: Dict[type, Dict] = {
    StakeStatus: STAKE_TRANSITIONS,
    ReferralStatus: REFERRAL_TRANSITIONS,
    GroupStatus: GROUP_TRANSITIONS,
    GambleStatus: GAMBLE_TRANSITIONS,
}


def can_transition(current: Enum, target: Enum) -> bool:
    """Разрешён ли переход current → target"""
    table = _TABLES[type(current)]
    return target in table[current]


def ensure_transition(current: Enum, target: Enum, entity: str = "") -> None:
    """Бросает IllegalTransitionError для запрещённого перехода"""
    if type(current) is not type(target):
        raise IllegalTransitionError(f"{entity}: mixed status types {current} → {target}")
    if not can_transition(current, target):
        raise IllegalTransitionError(
            f"{entity}: transition {current.value} → {target.value} is not allowed"
        )


def sources_of(target: Enum) -> List[Enum]:
    """Статусы, из которых разрешён переход в target"""
    table = _TABLES[type(target)]
    return [status for status, targets in table.items() if target in targets]
