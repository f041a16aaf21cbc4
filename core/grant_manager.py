"""
Модуль: Ручные гранты наград
Описание: Создание, деактивация и выборка ручных грантов (начисление без стейка)
Автор: NFT Staking Rewards Team
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from config.constants import GrantStatus
from core.errors import NotFoundError, ValidationError
from db.models import ManualGrant
from utils.converters import utc_now
from utils.logger import get_logger
from utils.validators import StakeValidator, validate_wallet

logger = get_logger("GrantManager")


def active_grants_query(now: datetime, wallet: Optional[str] = None):
    """status=active, start_time <= now и (end_time не задан или end_time >= now), новые первыми"""
    query = select(ManualGrant).where(
        ManualGrant.status == GrantStatus.ACTIVE.value,
        ManualGrant.start_time <= now,
        or_(ManualGrant.end_time.is_(None), ManualGrant.end_time >= now),
    )
    if wallet:
        query = query.where(ManualGrant.wallet == wallet)
    return query.order_by(ManualGrant.created_at.desc(), ManualGrant.id.desc())


class GrantManager:
    """Администрирование ручных грантов"""

    def __init__(self, db_manager):
        self.db = db_manager

    def create_grant(self, wallet: str, tier: str,
                     start_time: Optional[datetime] = None,
                     end_time: Optional[datetime] = None,
                     notes: Optional[str] = None) -> Dict:
        """
        Создать активный грант.

        Args:
            wallet: Кошелёк получателя
            tier: Уровень начисления
            start_time: Начало (по умолчанию сейчас)
            end_time: Окончание (None: бессрочно)
            notes: Комментарий администратора
        """
        wallet = validate_wallet(wallet)
        tier_enum = StakeValidator.validate_tier(tier)
        start_time = start_time or utc_now()
        if end_time is not None and end_time <= start_time:
            raise ValidationError("Grant end_time must be after start_time", "invalid_grant_period")

        with self.db.get_session() as session:
            grant = ManualGrant(
                wallet=wallet,
                tier=tier_enum.value,
                start_time=start_time,
                end_time=end_time,
                status=GrantStatus.ACTIVE.value,
                notes=notes,
                created_at=utc_now(),
            )
            session.add(grant)
            session.flush()
            result = grant.to_dict()

        logger.info(f"🎁 Grant #{result['id']} created: {wallet} | {tier_enum.value} | until {end_time or '∞'}")
        return result

    def deactivate_grant(self, grant_id: int) -> Dict:
        """Деактивировать грант (повторная деактивация ничего не меняет)"""
        with self.db.get_session() as session:
            grant = session.get(ManualGrant, grant_id)
            if grant is None:
                raise NotFoundError(f"Grant {grant_id} not found", "grant_not_found")
            if grant.status == GrantStatus.ACTIVE.value:
                session.execute(
                    update(ManualGrant)
                    .where(ManualGrant.id == grant_id)
                    .values(status=GrantStatus.INACTIVE.value)
                    .execution_options(synchronize_session=False)
                )
                logger.info(f"⏹️ Grant #{grant_id} deactivated")
            session.expire(grant)
            return session.get(ManualGrant, grant_id).to_dict()

    def active_grants(self, session: Session, now: datetime) -> List[ManualGrant]:
        return list(session.execute(active_grants_query(now)).scalars())

    def list_active_grants(self, wallet: Optional[str] = None, now: Optional[datetime] = None) -> List[Dict]:
        """Активные гранты (все или одного кошелька)"""
        now = now or utc_now()
        wallet = validate_wallet(wallet) if wallet else None
        with self.db.get_session() as session:
            return [grant.to_dict() for grant in session.execute(active_grants_query(now, wallet)).scalars()]
