"""
Модуль: Жизненный цикл рефералов
Описание: Подтверждение рефералов по сроку стейка и каскадная потеря при форфейте
Автор: NFT Staking Rewards Team
"""

from datetime import datetime, timedelta
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from config.constants import REFERRAL_MATURATION_DAYS, ReferralStatus, StakeStatus
from core.state_machine import can_transition
from db.models import Referral, Stake
from utils.logger import get_logger

logger = get_logger("ReferralLifecycle")


class ReferralLifecycle:
    """
    pending → confirmed: стейк был активен не меньше 10 дней от start_time
    pending/confirmed → forfeited: связанный стейк потерян
    """

    def __init__(self, db_manager, maturation_days: int = REFERRAL_MATURATION_DAYS):
        self.db = db_manager
        self.maturation = timedelta(days=maturation_days)

    def matured_referral_ids(self, session: Session, now: datetime) -> List[int]:
        """Pending рефералы, чей стейк начат не позже now - 10 дней"""
        cutoff = now - self.maturation
        rows = session.execute(
            select(Referral.id)
            .join(Stake, Stake.id == Referral.stake_id)
            .where(
                Referral.status == ReferralStatus.PENDING.value,
                # completed: стейк был активен весь срок
                Stake.status.in_([StakeStatus.ACTIVE.value, StakeStatus.COMPLETED.value]),
                Stake.start_time <= cutoff,
            )
            .order_by(Referral.id)
        )
        return [row[0] for row in rows]

    def confirm_matured(self, now: datetime) -> int:
        """
        Подтвердить созревшие рефералы.

        Returns:
            int: Количество подтверждённых
        """
        confirmed = 0
        with self.db.get_session() as session:
            for referral_id in self.matured_referral_ids(session, now):
                result = session.execute(
                    update(Referral)
                    .where(Referral.id == referral_id, Referral.status == ReferralStatus.PENDING.value)
                    .values(status=ReferralStatus.CONFIRMED.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    confirmed += 1
                    logger.info(f"✅ Referral #{referral_id} confirmed")

        if confirmed:
            logger.info(f"🤝 Confirmed referrals: {confirmed}")
        return confirmed

    def forfeit_referral(self, session: Session, referral_id: int, now: datetime) -> bool:
        """
        Каскад потери стейка на реферал (перекрывает confirmed).

        Returns:
            bool: True, если статус изменён в этом вызове
        """
        referral = session.get(Referral, referral_id)
        if referral is None:
            logger.warning(f"⚠️ Referral #{referral_id} not found for forfeiture")
            return False
        if not can_transition(referral.status_enum, ReferralStatus.FORFEITED):
            return False

        result = session.execute(
            update(Referral)
            .where(Referral.id == referral_id, Referral.status == referral.status)
            .values(status=ReferralStatus.FORFEITED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.info(f"🚫 Referral #{referral_id}: {referral.status} → forfeited")
            return True
        return False
