"""
Модуль db - Работа с базой данных NFT Staking Rewards Engine
"""

from .models import (
    Base, Stake, RewardBalance, ManualGrant, Referral, ReferralGroup, Forfeiture, Profile
)
from .database import DatabaseManager

__all__ = [
    'Base',
    'Stake',
    'RewardBalance',
    'ManualGrant',
    'Referral',
    'ReferralGroup',
    'Forfeiture',
    'Profile',
    'DatabaseManager'
]
