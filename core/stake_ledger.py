"""
Модуль: Реестр стейков
Описание: Выборка активных стейков, завершение по сроку и каскадная потеря стейка
Автор: NFT Staking Rewards Team
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from config.constants import StakeStatus, ForfeitureReason
from core.referral_lifecycle import ReferralLifecycle
from core.state_machine import can_transition, sources_of
from db.models import Stake, Referral, Forfeiture
from utils.logger import get_logger, get_domain_logger

logger = get_logger("StakeLedger")


class StakeLedger:
    """Жизненный цикл стейка: active → completed | forfeited"""

    def __init__(self, db_manager, referrals: Optional[ReferralLifecycle] = None):
        self.db = db_manager
        self.referrals = referrals or ReferralLifecycle(db_manager)
        self.domain_log = get_domain_logger()

    def list_active(self, session: Session) -> List[Stake]:
        return list(session.execute(
            select(Stake).where(Stake.status == StakeStatus.ACTIVE.value).order_by(Stake.id)
        ).scalars())

    def complete_expired(self, now: datetime) -> int:
        """Активные стейки с end_time <= now → completed"""
        completable = [status.value for status in sources_of(StakeStatus.COMPLETED)]
        with self.db.get_session() as session:
            result = session.execute(
                update(Stake)
                .where(Stake.status.in_(completable), Stake.end_time <= now)
                .values(status=StakeStatus.COMPLETED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            completed = result.rowcount or 0

        if completed:
            logger.info(f"🏁 Completed stakes: {completed}")
        return completed

    def forfeit(self, stake_id: int, reason: ForfeitureReason, now: datetime, detail: str = "") -> bool:
        """
        Потеря стейка с каскадом.

        В одной транзакции: стейк → forfeited (CAS на active), запись
        Forfeiture, связанный реферал → forfeited.

        Returns:
            bool: True, если стейк потерян в этом вызове
        """
        with self.db.get_session() as session:
            stake = session.get(Stake, stake_id)
            if stake is None or not can_transition(stake.status_enum, StakeStatus.FORFEITED):
                logger.debug(f"⏭️ Stake #{stake_id} cannot be forfeited, skipped")
                return False

            result = session.execute(
                update(Stake)
                .where(Stake.id == stake_id, Stake.status == StakeStatus.ACTIVE.value)
                .values(status=StakeStatus.FORFEITED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.debug(f"⏭️ Stake #{stake_id} changed concurrently, forfeiture skipped")
                return False

            referrer_wallet = None
            if stake.referral_id is not None:
                referral = session.get(Referral, stake.referral_id)
                if referral is not None:
                    referrer_wallet = referral.referrer_wallet
                    self.referrals.forfeit_referral(session, referral.id, now)

            session.add(Forfeiture(
                stake_id=stake.id,
                original_wallet=stake.wallet,
                referrer_wallet=referrer_wallet,
                reason=reason.value,
                occurred_at=now,
            ))
            session.flush()

        self.domain_log.log_forfeiture(stake_id, stake.wallet, reason.value, detail)
        return True
