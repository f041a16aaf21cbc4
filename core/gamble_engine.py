"""
Модуль: Gamble для когорт в вестинге
Описание: Однократная вероятностная попытка ускорить (win) или продлить (lose) вестинг
Автор: NFT Staking Rewards Team
"""

import random
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import update

from config.constants import (
    GAMBLE_WIN_PROBABILITY, GAMBLE_EXTENSION_DAYS, GroupStatus, GambleStatus
)
from core.errors import ConflictError, ForbiddenError, NotFoundError
from core.state_machine import can_transition, ensure_transition
from db.models import ReferralGroup
from utils.converters import utc_now
from utils.logger import get_logger, get_domain_logger

logger = get_logger("GambleEngine")

WIN_MESSAGE = "🎉 Congratulations! You won the gamble! Your reward is now claimable."
LOSE_MESSAGE = "😔 You lost the gamble. Vesting time extended by 10 days."


class GambleEngine:
    """
    Предусловие: status=vesting, gamble_status=offered, вызывающий является
    referrer когорты. Переход выполняется одним CAS UPDATE, поэтому
    повторная или параллельная игра получает ConflictError.
    """

    def __init__(self, db_manager, rng: Optional[random.Random] = None,
                 win_probability: float = GAMBLE_WIN_PROBABILITY):
        self.db = db_manager
        self.rng = rng or random.SystemRandom()
        self.win_probability = win_probability
        self.extension = timedelta(days=GAMBLE_EXTENSION_DAYS)
        self.domain_log = get_domain_logger()

    def play(self, group_id: int, wallet: str, now: Optional[datetime] = None) -> Dict:
        """
        Сыграть gamble для когорты.

        Returns:
            Dict: {'result': 'won'|'lost', 'message': str, 'group': {...}}
        """
        now = now or utc_now()
        wallet = wallet.strip().lower()

        with self.db.get_session() as session:
            group = session.get(ReferralGroup, group_id)
            if group is None:
                raise NotFoundError(f"Referral group {group_id} not found", "group_not_found")
            if group.referrer_wallet.lower() != wallet:
                raise ForbiddenError("Only the group's referrer can play the gamble", "forbidden")
            available = can_transition(group.gamble_status_enum, GambleStatus.WON)
            if group.status_enum != GroupStatus.VESTING or not available:
                raise ConflictError(
                    f"Gamble is not available (status={group.status}, gamble={group.gamble_status})",
                    "gamble_unavailable"
                )

            won = self.rng.random() < self.win_probability
            outcome = GambleStatus.WON if won else GambleStatus.LOST
            ensure_transition(group.gamble_status_enum, outcome, f"group#{group.id} gamble")
            guard = (
                ReferralGroup.id == group.id,
                ReferralGroup.status == GroupStatus.VESTING.value,
                ReferralGroup.gamble_status == GambleStatus.OFFERED.value,
                ReferralGroup.vesting_end == group.vesting_end,
            )
            if won:
                values = {"status": GroupStatus.CLAIMABLE.value, "gamble_status": GambleStatus.WON.value}
            else:
                values = {"gamble_status": GambleStatus.LOST.value, "vesting_end": group.vesting_end + self.extension}
            values["updated_at"] = now

            result = session.execute(
                update(ReferralGroup).where(*guard).values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError("Gamble was already played for this group", "gamble_unavailable")

            session.expire(group)
            snapshot = session.get(ReferralGroup, group_id).to_dict()

        self.domain_log.log_gamble(group_id, wallet, outcome.value)
        return {
            "result": outcome.value,
            "message": WIN_MESSAGE if won else LOSE_MESSAGE,
            "group": snapshot,
        }
