"""
Модуль: Начисление наград NFT Staking Rewards Engine
Описание: Расчёт прироста очков по уровню/длительности и атомарное начисление на баланс кошелька
Автор: NFT Staking Rewards Team
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Type, Union

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from config.constants import (
    Tier, TIER_RULES, DURATION_MULTIPLIERS, TICKS_PER_HOUR, StakeStatus, GrantStatus
)
from core.errors import ValidationError
from db.models import Stake, ManualGrant, RewardBalance
from utils.converters import utc_now, format_points
from utils.logger import get_logger, get_domain_logger

logger = get_logger("RewardAccrual")

_INSERT_BY_DIALECT = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


class RewardAccrual:
    """
    Начисление очков за стейки и ручные гранты.

    Каждый источник (стейк или грант) получает не более одного начисления
    на тик: сначала CAS на last_accrued_tick, затем атомарный прирост
    аккумулятора уровня в reward_balances, в одной транзакции.
    """

    def __init__(self, db_manager):
        self.db = db_manager
        self.domain_log = get_domain_logger()

    # --- Формулы ---

    @staticmethod
    def stake_increment(tier: Tier, duration_months: int) -> Decimal:
        """(hourly_rate / ticks_per_hour) * multiplier(duration_months)"""
        tier = Tier.parse(tier)
        multiplier = DURATION_MULTIPLIERS.get(int(duration_months))
        if multiplier is None:
            raise ValidationError(f"Unsupported duration_months: {duration_months}", "invalid_duration_months")
        return TIER_RULES[tier]["hourly_rate"] / TICKS_PER_HOUR * multiplier

    @staticmethod
    def grant_increment(tier: Tier) -> Decimal:
        """Гранты без множителя длительности"""
        return TIER_RULES[Tier.parse(tier)]["hourly_rate"] / TICKS_PER_HOUR

    # --- Начисление в рамках цикла ---

    def accrue_stake(self, session: Session, stake: Stake, tick: int, now: datetime) -> Decimal:
        """
        Начислить очки за один тик активного стейка.

        Returns:
            Decimal: Начисленная сумма (0, если тик уже был учтён)
        """
        if not self._claim_tick(session, Stake, stake.id, tick, StakeStatus.ACTIVE.value):
            logger.debug(f"⏭️ Stake #{stake.id}: tick {tick} already accrued")
            return Decimal("0")

        amount = self.stake_increment(stake.tier_enum, stake.duration_months)
        self._add_points(session, stake.wallet, stake.tier_enum, amount, now)
        self.domain_log.log_accrual(stake.wallet, stake.tier, format_points(amount), "stake", stake.id)
        return amount

    def accrue_grant(self, session: Session, grant: ManualGrant, tick: int, now: datetime) -> Decimal:
        """Начислить очки за один тик активного гранта"""
        if not self._claim_tick(session, ManualGrant, grant.id, tick, GrantStatus.ACTIVE.value):
            logger.debug(f"⏭️ Grant #{grant.id}: tick {tick} already accrued")
            return Decimal("0")

        amount = self.grant_increment(grant.tier_enum)
        self._add_points(session, grant.wallet, grant.tier_enum, amount, now)
        self.domain_log.log_accrual(grant.wallet, grant.tier, format_points(amount), "grant", grant.id)
        return amount

    def _claim_tick(self, session: Session, model: Type[Union[Stake, ManualGrant]],
                    row_id: int, tick: int, active_status: str) -> bool:
        """CAS: last_accrued_tick → tick, только если тик ещё не учтён"""
        result = session.execute(
            update(model)
            .where(
                model.id == row_id,
                model.status == active_status,
                or_(model.last_accrued_tick.is_(None), model.last_accrued_tick < tick),
            )
            .values(last_accrued_tick=tick)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _ensure_balance(self, session: Session, wallet: str, now: datetime) -> None:
        """Ленивое создание строки баланса (повторная вставка игнорируется)"""
        values = {
            "wallet": wallet,
            "voter_points": Decimal("0"),
            "governor_points": Decimal("0"),
            "council_points": Decimal("0"),
            "last_updated": now,
        }
        insert_factory = _INSERT_BY_DIALECT.get(session.get_bind().dialect.name)
        if insert_factory is not None:
            session.execute(
                insert_factory(RewardBalance).values(**values).on_conflict_do_nothing(index_elements=["wallet"])
            )
            return

        existing = session.execute(
            select(RewardBalance.id).where(RewardBalance.wallet == wallet)
        ).scalar_one_or_none()
        if existing is None:
            session.add(RewardBalance(**values))
            session.flush()

    def _add_points(self, session: Session, wallet: str, tier: Tier, amount: Decimal, now: datetime) -> None:
        """Атомарный прирост аккумулятора: col = col + amount"""
        self._ensure_balance(session, wallet, now)
        column = getattr(RewardBalance, TIER_RULES[tier]["points_column"])
        session.execute(
            update(RewardBalance)
            .where(RewardBalance.wallet == wallet)
            .values({column: column + amount, RewardBalance.last_updated: now})
            .execution_options(synchronize_session=False)
        )

    # --- Чтение и администрирование ---

    def get_balance(self, wallet: str) -> Dict:
        """Баланс кошелька (нули, если строки ещё нет)"""
        with self.db.get_session() as session:
            balance = session.execute(
                select(RewardBalance).where(RewardBalance.wallet == wallet)
            ).scalar_one_or_none()
            if balance is None:
                return {
                    "wallet": wallet,
                    "voter_points": "0",
                    "governor_points": "0",
                    "council_points": "0",
                    "last_updated": None,
                }
            return balance.to_dict()

    def adjust_balance(self, wallet: str, tier: Tier, delta: Union[Decimal, str, int],
                       reason: str, now: Optional[datetime] = None) -> Dict:
        """
        Административная корректировка баланса.

        Единственный путь уменьшения баланса; результат не может стать
        отрицательным.
        """
        tier = Tier.parse(tier)
        delta = Decimal(str(delta))
        if not reason:
            raise ValidationError("Adjustment reason is required", "invalid_request")
        now = now or utc_now()
        column = getattr(RewardBalance, TIER_RULES[tier]["points_column"])

        with self.db.get_session() as session:
            self._ensure_balance(session, wallet, now)
            result = session.execute(
                update(RewardBalance)
                .where(RewardBalance.wallet == wallet, column + delta >= 0)
                .values({column: column + delta, RewardBalance.last_updated: now})
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ValidationError(
                    f"Adjustment {delta} would make {tier.value} balance negative", "invalid_adjustment"
                )

        logger.warning(f"🛠️ Balance adjusted: {wallet} | {delta:+} {tier.value} | {reason}")
        return self.get_balance(wallet)
