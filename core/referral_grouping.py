"""
Модуль: Группировка рефералов в когорты
Описание: Неразмеченные рефералы одного реферера и уровня объединяются по три (FIFO)
Автор: NFT Staking Rewards Team
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from config.constants import (
    COHORT_SIZE, VESTING_PERIOD_DAYS, ReferralStatus, GroupStatus, GambleStatus
)
from core.errors import ConflictError
from db.models import Referral, ReferralGroup, Stake
from utils.logger import get_logger, get_domain_logger

logger = get_logger("ReferralGrouping")


class ReferralGrouping:
    """
    Формирование когорт.

    Пул: is_mapped_to_reward=false и status ∈ {pending, confirmed}.
    Уровень реферала берётся из связанного стейка.
    """

    def __init__(self, db_manager, vesting_days: int = VESTING_PERIOD_DAYS):
        self.db = db_manager
        self.vesting_period = timedelta(days=vesting_days)
        self.domain_log = get_domain_logger()

    def eligible_partitions(self, session: Session) -> Dict[Tuple[str, str], List[int]]:
        """(referrer_wallet, tier) → id рефералов от старых к новым"""
        rows = session.execute(
            select(Referral.id, Referral.referrer_wallet, Stake.tier)
            .join(Stake, Stake.id == Referral.stake_id)
            .where(
                Referral.is_mapped_to_reward.is_(False),
                Referral.status.in_([ReferralStatus.PENDING.value, ReferralStatus.CONFIRMED.value]),
            )
            .order_by(Referral.created_at, Referral.id)
        )

        partitions: Dict[Tuple[str, str], List[int]] = OrderedDict()
        for referral_id, referrer_wallet, tier in rows:
            partitions.setdefault((referrer_wallet, tier), []).append(referral_id)
        return partitions

    def form_groups(self, now: datetime) -> List[int]:
        """
        Создать когорты для всех партиций с >= 3 рефералами.

        Returns:
            List[int]: id созданных когорт
        """
        created: List[int] = []
        with self.db.get_session() as session:
            for (referrer_wallet, tier), referral_ids in self.eligible_partitions(session).items():
                while len(referral_ids) >= COHORT_SIZE:
                    members, referral_ids = referral_ids[:COHORT_SIZE], referral_ids[COHORT_SIZE:]
                    created.append(self._create_group(session, referrer_wallet, tier, members, now))

        if created:
            logger.info(f"📦 Created referral groups: {created}")
        return created

    def _create_group(self, session: Session, referrer_wallet: str, tier: str,
                      members: List[int], now: datetime) -> int:
        # Разметка CAS: если кто-то из членов уже размечен параллельным циклом,
        # вся транзакция откатывается и группировка повторится в следующем цикле
        result = session.execute(
            update(Referral)
            .where(Referral.id.in_(members), Referral.is_mapped_to_reward.is_(False))
            .values(is_mapped_to_reward=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(members):
            raise ConflictError(f"Referrals {members} were mapped concurrently", "grouping_conflict")

        group = ReferralGroup(
            referrer_wallet=referrer_wallet,
            tier=tier,
            referral_1_id=members[0],
            referral_2_id=members[1],
            referral_3_id=members[2],
            status=GroupStatus.VESTING.value,
            gamble_status=GambleStatus.OFFERED.value,
            vesting_start=now,
            vesting_end=now + self.vesting_period,
        )
        session.add(group)
        session.flush()
        self.domain_log.log_group_transition(group.id, "-", GroupStatus.VESTING.value,
                                             f"{referrer_wallet} {tier} referrals {members}")
        return group.id
