"""
Модуль: Мониторинг вестинга когорт
Описание: vesting → claimable | forfeited по статусам рефералов и времени вестинга
Автор: NFT Staking Rewards Team
"""

from datetime import datetime
from typing import Dict, List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from config.constants import GroupStatus, ReferralStatus
from core.state_machine import ensure_transition
from db.models import Referral, ReferralGroup
from utils.logger import get_logger, get_domain_logger

logger = get_logger("VestingMonitor")


class VestingGroupMonitor:
    """
    Разрешение когорт в статусе vesting.

    - любой реферал forfeited → когорта forfeited, остальные члены
      размечаются обратно (is_mapped_to_reward=false)
    - все три confirmed и now >= vesting_end → claimable
      (в том числе после проигранного gamble: vesting_end уже продлён)
    """

    def __init__(self, db_manager):
        self.db = db_manager
        self.domain_log = get_domain_logger()

    def vesting_group_ids(self) -> List[int]:
        with self.db.get_session() as session:
            return list(session.execute(
                select(ReferralGroup.id)
                .where(ReferralGroup.status == GroupStatus.VESTING.value)
                .order_by(ReferralGroup.id)
            ).scalars())

    def resolve_groups(self, now: datetime) -> Dict[str, int]:
        """
        Пройти по всем когортам в вестинге; ошибка одной когорты
        не прерывает остальные.

        Returns:
            Dict[str, int]: {'claimable': n, 'forfeited': n, 'vesting': n, 'errors': n}
        """
        stats = {"claimable": 0, "forfeited": 0, "vesting": 0, "errors": 0}
        for group_id in self.vesting_group_ids():
            try:
                outcome = self.resolve_group(group_id, now)
            except Exception as e:
                stats["errors"] += 1
                logger.error(f"❌ Group #{group_id} resolution failed: {type(e).__name__}: {e}")
                continue
            stats[outcome.value] += 1
        return stats

    def resolve_group(self, group_id: int, now: datetime) -> GroupStatus:
        """Разрешить одну когорту; возвращает её статус после проверки"""
        with self.db.get_session() as session:
            group = session.get(ReferralGroup, group_id)
            if group is None or group.status_enum != GroupStatus.VESTING:
                return group.status_enum if group else GroupStatus.VESTING

            members = list(session.execute(
                select(Referral).where(Referral.id.in_(group.member_referral_ids))
            ).scalars())
            statuses = [member.status_enum for member in members]

            if ReferralStatus.FORFEITED in statuses:
                if not self._transition(session, group, GroupStatus.FORFEITED, now):
                    return GroupStatus(group.status)
                survivors = [m.id for m in members if m.status_enum != ReferralStatus.FORFEITED]
                if survivors:
                    session.execute(
                        update(Referral)
                        .where(Referral.id.in_(survivors))
                        .values(is_mapped_to_reward=False, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                self.domain_log.log_group_transition(
                    group_id, GroupStatus.VESTING.value, GroupStatus.FORFEITED.value,
                    f"member forfeited, unmapped {survivors}"
                )
                return GroupStatus.FORFEITED

            all_confirmed = len(members) == len(group.member_referral_ids) and all(
                status == ReferralStatus.CONFIRMED for status in statuses
            )
            if all_confirmed and now >= group.vesting_end:
                # Проигранный gamble между чтением и записью сдвигает vesting_end
                guard = (
                    ReferralGroup.vesting_end <= now,
                    ReferralGroup.vesting_end == group.vesting_end,
                    ReferralGroup.gamble_status == group.gamble_status,
                )
                if not self._transition(session, group, GroupStatus.CLAIMABLE, now, *guard):
                    return GroupStatus(group.status)
                self.domain_log.log_group_transition(
                    group_id, GroupStatus.VESTING.value, GroupStatus.CLAIMABLE.value,
                    f"all referrals confirmed, gamble {group.gamble_status}"
                )
                return GroupStatus.CLAIMABLE

        return GroupStatus.VESTING

    def _transition(self, session: Session, group: ReferralGroup, target: GroupStatus,
                    now: datetime, *guard) -> bool:
        ensure_transition(group.status_enum, target, f"group#{group.id}")
        result = session.execute(
            update(ReferralGroup)
            .where(ReferralGroup.id == group.id, ReferralGroup.status == GroupStatus.VESTING.value, *guard)
            .values(status=target.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.debug(f"⏭️ Group #{group.id} changed concurrently")
            return False
        return True
