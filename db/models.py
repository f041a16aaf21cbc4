"""
Модуль: Модели базы данных для NFT Staking Rewards Engine
Описание: SQLAlchemy модели стейков, рефералов, когорт, балансов, грантов и форфейтов
Автор: NFT Staking Rewards Team
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, Boolean, Text, Index, ForeignKey, text
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from config.constants import (
    Tier, TIER_RULES, StakeStatus, ReferralStatus, GroupStatus, GambleStatus, GrantStatus
)

Base = declarative_base()

POINTS_TYPE = Numeric(24, 4)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Stake(Base):
    """Стейк NFT: владение заблокировано на срок"""
    __tablename__ = 'stakes'

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet = Column(String(66), nullable=False, index=True)
    asset_id = Column(String(66), nullable=False, index=True)
    tier = Column(String(16), nullable=False)
    duration_months = Column(Integer, nullable=False)
    duration_days = Column(Integer, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    referral_code_used = Column(String(64), nullable=True)
    verification_code = Column(String(64), nullable=True)
    status = Column(String(16), nullable=False, default=StakeStatus.ACTIVE.value, index=True)
    referral_id = Column(Integer, ForeignKey('referrals.id'), nullable=True)
    # Индекс последнего тика, за который начислены очки
    last_accrued_tick = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        # Не более одного активного стейка на asset_id
        Index(
            'uq_stakes_active_asset', 'asset_id', unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        Index('idx_stakes_asset_referral_code', 'asset_id', 'referral_code_used'),
    )

    @property
    def tier_enum(self) -> Tier:
        return Tier.parse(self.tier)

    @property
    def status_enum(self) -> StakeStatus:
        return StakeStatus(self.status)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "wallet": self.wallet,
            "asset_id": self.asset_id,
            "tier": self.tier,
            "duration_months": self.duration_months,
            "duration_days": self.duration_days,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "referral_code_used": self.referral_code_used,
            "status": self.status,
            "referral_id": self.referral_id,
        }


class RewardBalance(Base):
    """Баланс очков кошелька, по аккумулятору на уровень"""
    __tablename__ = 'reward_balances'

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet = Column(String(66), unique=True, nullable=False, index=True)
    voter_points = Column(POINTS_TYPE, nullable=False, default=Decimal('0'))
    governor_points = Column(POINTS_TYPE, nullable=False, default=Decimal('0'))
    council_points = Column(POINTS_TYPE, nullable=False, default=Decimal('0'))
    last_updated = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())

    def points_for(self, tier: Tier) -> Decimal:
        return Decimal(str(getattr(self, TIER_RULES[tier]["points_column"]) or 0))

    def to_dict(self) -> Dict:
        return {
            "wallet": self.wallet,
            "voter_points": str(self.points_for(Tier.VOTER)),
            "governor_points": str(self.points_for(Tier.GOVERNOR)),
            "council_points": str(self.points_for(Tier.COUNCIL)),
            "last_updated": _iso(self.last_updated),
        }


class ManualGrant(Base):
    """Ручной грант: начисление без стейка"""
    __tablename__ = 'manual_grants'

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet = Column(String(66), nullable=False, index=True)
    tier = Column(String(16), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    status = Column(String(16), nullable=False, default=GrantStatus.ACTIVE.value, index=True)
    notes = Column(Text, nullable=True)
    last_accrued_tick = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now())

    @property
    def tier_enum(self) -> Tier:
        return Tier.parse(self.tier)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "wallet": self.wallet,
            "tier": self.tier,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "status": self.status,
            "notes": self.notes,
        }


class Referral(Base):
    """Реферал: стейк, открытый по реферальному коду"""
    __tablename__ = 'referrals'

    id = Column(Integer, primary_key=True, autoincrement=True)
    referrer_wallet = Column(String(66), nullable=False, index=True)
    # Обратная ссылка только для поиска, без FK
    stake_id = Column(Integer, nullable=True, index=True)
    status = Column(String(16), nullable=False, default=ReferralStatus.PENDING.value, index=True)
    is_mapped_to_reward = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_referrals_pool', 'status', 'is_mapped_to_reward'),
    )

    @property
    def status_enum(self) -> ReferralStatus:
        return ReferralStatus(self.status)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "referrer_wallet": self.referrer_wallet,
            "stake_id": self.stake_id,
            "status": self.status,
            "is_mapped_to_reward": bool(self.is_mapped_to_reward),
            "created_at": _iso(self.created_at),
        }


class ReferralGroup(Base):
    """Когорта из трёх рефералов одного реферера и уровня"""
    __tablename__ = 'referral_groups'

    id = Column(Integer, primary_key=True, autoincrement=True)
    referrer_wallet = Column(String(66), nullable=False, index=True)
    tier = Column(String(16), nullable=False)
    referral_1_id = Column(Integer, ForeignKey('referrals.id'), nullable=False)
    referral_2_id = Column(Integer, ForeignKey('referrals.id'), nullable=False)
    referral_3_id = Column(Integer, ForeignKey('referrals.id'), nullable=False)
    status = Column(String(16), nullable=False, default=GroupStatus.VESTING.value, index=True)
    gamble_status = Column(String(16), nullable=False, default=GambleStatus.OFFERED.value)
    vesting_start = Column(DateTime, nullable=False)
    vesting_end = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    @property
    def member_referral_ids(self) -> List[int]:
        return [self.referral_1_id, self.referral_2_id, self.referral_3_id]

    @property
    def status_enum(self) -> GroupStatus:
        return GroupStatus(self.status)

    @property
    def gamble_status_enum(self) -> GambleStatus:
        return GambleStatus(self.gamble_status)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "referrer_wallet": self.referrer_wallet,
            "tier": self.tier,
            "member_referral_ids": self.member_referral_ids,
            "status": self.status,
            "gamble_status": self.gamble_status,
            "vesting_start": _iso(self.vesting_start),
            "vesting_end": _iso(self.vesting_end),
        }


class Forfeiture(Base):
    """Аудит потери стейка (append-only)"""
    __tablename__ = 'forfeitures'

    id = Column(Integer, primary_key=True, autoincrement=True)
    stake_id = Column(Integer, ForeignKey('stakes.id'), unique=True, nullable=False)
    original_wallet = Column(String(66), nullable=False, index=True)
    referrer_wallet = Column(String(66), nullable=True, index=True)
    reason = Column(String(16), nullable=False)
    occurred_at = Column(DateTime, nullable=False)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "stake_id": self.stake_id,
            "original_wallet": self.original_wallet,
            "referrer_wallet": self.referrer_wallet,
            "reason": self.reason,
            "occurred_at": _iso(self.occurred_at),
        }


class Profile(Base):
    """Профиль пользователя (ведётся внешним сервисом): referral_code → wallet"""
    __tablename__ = 'profiles'

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet = Column(String(66), unique=True, nullable=False)
    username = Column(String(64), nullable=True)
    referral_code = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=func.now())
