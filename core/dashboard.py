"""
Модуль: Сводка по кошельку
Описание: Баланс, стейки, гранты, рефералы, когорты и форфейты одного кошелька
Автор: NFT Staking Rewards Team
"""

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import select

from config.constants import GroupStatus
from core.grant_manager import active_grants_query
from db.models import (
    Stake, RewardBalance, Referral, ReferralGroup, Forfeiture, Profile
)
from utils.converters import utc_now
from utils.validators import validate_wallet


class WalletDashboard:
    """Только чтение, одна сессия на запрос"""

    def __init__(self, db_manager):
        self.db = db_manager

    def get_wallet_summary(self, wallet: str, now: Optional[datetime] = None) -> Dict:
        now = now or utc_now()
        wallet = validate_wallet(wallet)

        with self.db.get_session() as session:
            balance = session.execute(
                select(RewardBalance).where(RewardBalance.wallet == wallet)
            ).scalar_one_or_none()

            profile = session.execute(
                select(Profile).where(Profile.wallet == wallet)
            ).scalar_one_or_none()

            stakes = session.execute(
                select(Stake).where(Stake.wallet == wallet)
                .order_by(Stake.created_at.desc(), Stake.id.desc())
            ).scalars().all()

            grants = session.execute(active_grants_query(now, wallet)).scalars().all()

            referrals = session.execute(
                select(Referral, Stake.tier)
                .outerjoin(Stake, Stake.id == Referral.stake_id)
                .where(Referral.referrer_wallet == wallet)
                .order_by(Referral.created_at.desc(), Referral.id.desc())
            ).all()

            groups = session.execute(
                select(ReferralGroup)
                .where(ReferralGroup.referrer_wallet == wallet,
                       ReferralGroup.status != GroupStatus.FORFEITED.value)
                .order_by(ReferralGroup.created_at.desc(), ReferralGroup.id.desc())
            ).scalars().all()

            forfeitures = session.execute(
                select(Forfeiture).where(Forfeiture.referrer_wallet == wallet)
                .order_by(Forfeiture.occurred_at.desc())
            ).scalars().all()

            return {
                "wallet": wallet,
                "referral_code": profile.referral_code if profile else None,
                "balance": balance.to_dict() if balance else {
                    "wallet": wallet,
                    "voter_points": "0",
                    "governor_points": "0",
                    "council_points": "0",
                    "last_updated": None,
                },
                "stakes": [stake.to_dict() for stake in stakes],
                "grants": [grant.to_dict() for grant in grants],
                "referrals": [{**referral.to_dict(), "tier": tier} for referral, tier in referrals],
                "groups": [group.to_dict() for group in groups],
                "forfeitures": [forfeiture.to_dict() for forfeiture in forfeitures],
            }
