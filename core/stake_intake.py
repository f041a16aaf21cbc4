"""
Модуль: Приём стейков
Описание: Валидация запроса, защита от повторного стейка и повторного реферала,
          атомарное создание Referral → Stake → backfill stake_id
Автор: NFT Staking Rewards Team
"""

from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.constants import StakeStatus, ReferralStatus
from core.errors import ConflictError, PersistenceError, StakingError, UpstreamError
from db.models import Stake, Referral, Profile
from utils.converters import utc_now
from utils.logger import get_logger
from utils.validators import StakeValidator, validate_wallet, validate_asset_id

logger = get_logger("StakeIntake")


class DatabaseProfileResolver:
    """referral_code → wallet через таблицу profiles (ведётся внешним сервисом)"""

    def __init__(self, db_manager):
        self.db = db_manager

    def resolve(self, referral_code: str) -> Optional[str]:
        try:
            with self.db.get_session() as session:
                return session.execute(
                    select(Profile.wallet).where(Profile.referral_code == referral_code)
                ).scalar_one_or_none()
        except PersistenceError as e:
            raise UpstreamError(f"Profile lookup failed: {e}", "profile_lookup_failed") from e


class StakeIntake:
    """
    Точка входа открытия стейка.

    Проверки:
    - уровень, длительность, адреса
    - нет активного стейка для asset_id (гарантируется уникальным индексом)
    - пара (asset_id, referral_code) ранее не использовалась
    """

    def __init__(self, db_manager, profile_resolver=None):
        self.db = db_manager
        self.profiles = profile_resolver or DatabaseProfileResolver(db_manager)

    def open_stake(self, wallet: str, asset_id: str, tier: str,
                   duration_days: int, duration_months: int,
                   referral_code: Optional[str] = None,
                   verification_code: Optional[str] = None,
                   now: Optional[datetime] = None) -> Dict:
        """
        Открыть стейк.

        Returns:
            Dict: Созданный стейк

        Raises:
            ValidationError: Некорректный ввод
            ConflictError: asset_already_staked / referral_reuse
            UpstreamError: Сбой сервиса профилей
        """
        now = now or utc_now()
        wallet = validate_wallet(wallet)
        asset_id = validate_asset_id(asset_id)
        tier_enum = StakeValidator.validate_tier(tier)
        duration_days, duration_months = StakeValidator.validate_duration(duration_days, duration_months)
        referral_code = StakeValidator.validate_referral_code(referral_code)
        verification_code = (verification_code or "").strip() or None

        referrer_wallet = self._resolve_referrer(referral_code) if referral_code else None

        try:
            with self.db.get_session() as session:
                self._check_conflicts(session, asset_id, referral_code)

                referral = None
                if referrer_wallet:
                    referral = Referral(
                        referrer_wallet=referrer_wallet,
                        status=ReferralStatus.PENDING.value,
                        is_mapped_to_reward=False,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(referral)
                    session.flush()

                stake = Stake(
                    wallet=wallet,
                    asset_id=asset_id,
                    tier=tier_enum.value,
                    duration_months=duration_months,
                    duration_days=duration_days,
                    start_time=now,
                    end_time=now + timedelta(days=duration_days),
                    referral_code_used=referral_code,
                    verification_code=verification_code,
                    status=StakeStatus.ACTIVE.value,
                    referral_id=referral.id if referral else None,
                    created_at=now,
                    updated_at=now,
                )
                session.add(stake)
                # Уникальный индекс на active asset_id срабатывает здесь
                session.flush()

                if referral is not None:
                    referral.stake_id = stake.id
                    session.flush()

                result = stake.to_dict()
        except PersistenceError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise ConflictError(f"Asset {asset_id} is already staked", "asset_already_staked") from e
            raise

        logger.info(
            f"🔒 Stake #{result['id']} opened: {wallet} | {asset_id} | {tier_enum.value} | "
            f"{duration_days}d/{duration_months}m"
            + (f" | referrer {referrer_wallet}" if referrer_wallet else "")
        )
        return result

    def _resolve_referrer(self, referral_code: str) -> Optional[str]:
        """Неизвестный код → стейк без реферала; сбой сервиса → UpstreamError"""
        try:
            referrer = self.profiles.resolve(referral_code)
        except StakingError:
            raise
        except Exception as e:
            raise UpstreamError(f"Profile lookup failed: {e}", "profile_lookup_failed") from e

        if not referrer:
            logger.warning(f"⚠️ Referral code {referral_code!r} does not resolve, staking without referral")
            return None
        return referrer.strip().lower()

    def _check_conflicts(self, session: Session, asset_id: str, referral_code: Optional[str]) -> None:
        active = session.execute(
            select(Stake.id).where(Stake.asset_id == asset_id, Stake.status == StakeStatus.ACTIVE.value)
        ).first()
        if active is not None:
            raise ConflictError(f"Asset {asset_id} is already staked", "asset_already_staked")

        if referral_code:
            reused = session.execute(
                select(Stake.id).where(Stake.asset_id == asset_id, Stake.referral_code_used == referral_code)
            ).first()
            if reused is not None:
                raise ConflictError(
                    f"Asset {asset_id} has already been used with referral code {referral_code!r}",
                    "referral_reuse"
                )
