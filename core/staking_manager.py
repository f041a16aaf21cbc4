"""
NFT Staking Rewards Engine - Staking Manager
Главный оркестратор цикла начисления наград.

Автор: NFT Staking Rewards Team
Версия: 1.0.0
"""

import threading
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from blockchain.ownership_verifier import OwnershipVerifier, OwnershipDecision, decide
from core.gamble_engine import GambleEngine
from core.grant_manager import GrantManager
from core.referral_grouping import ReferralGrouping
from core.referral_lifecycle import ReferralLifecycle
from core.reward_manager import RewardAccrual
from core.stake_ledger import StakeLedger
from core.vesting_monitor import VestingGroupMonitor
from db.models import Stake
from utils.converters import utc_now, tick_index, format_points
from utils.logger import get_logger, get_domain_logger

logger = get_logger(__name__)


class StakingStatus(Enum):
    """Статусы движка"""
    IDLE = "idle"
    RUNNING = "running"
    ERROR = "error"


@dataclass
class CycleReport:
    """Итоги одного цикла"""
    cycle_time: datetime
    tick: int
    processed_stakes: int = 0
    processed_grants: int = 0
    completed_stakes: int = 0
    accrued_stakes: int = 0
    accrued_grants: int = 0
    points_awarded: Decimal = Decimal("0")
    forfeited_stakes: int = 0
    deferred_stakes: int = 0
    confirmed_referrals: int = 0
    groups_created: int = 0
    groups_claimable: int = 0
    groups_forfeited: int = 0
    errors: List[str] = field(default_factory=list)
    processing_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["cycle_time"] = self.cycle_time.isoformat()
        data["points_awarded"] = format_points(self.points_awarded)
        data["processing_time"] = round(self.processing_time, 3)
        return data


class StakingManager:
    """
    Главный оркестратор цикла.

    Порядок шагов цикла:
    1. Завершение стейков с истёкшим сроком
    2. Проверка владения всех активных стейков (пакетно, параллельно)
    3. Начисление за подтверждённые стейки и активные гранты
    4. Потеря стейков с отрицательной проверкой (каскад на рефералы)
    5. Подтверждение созревших рефералов
    6. Формирование когорт
    7. Разрешение когорт в вестинге

    Ошибка одного элемента логируется и пропускается: элемент будет
    обработан в следующем цикле.
    """

    def __init__(self, db_manager, verifier: OwnershipVerifier,
                 forfeit_on_unknown: bool = False,
                 ownership_timeout: Optional[float] = None,
                 rng=None):
        """
        Args:
            db_manager: DatabaseManager
            verifier: Проверка владения (с внедрённым RPC клиентом)
            forfeit_on_unknown: Legacy политика для Unknown
            ownership_timeout: Таймаут проверки одного актива
            rng: Источник случайности для GambleEngine
        """
        self.db = db_manager
        self.verifier = verifier
        self.forfeit_on_unknown = forfeit_on_unknown
        self.ownership_timeout = ownership_timeout

        self.referrals = ReferralLifecycle(db_manager)
        self.ledger = StakeLedger(db_manager, self.referrals)
        self.accrual = RewardAccrual(db_manager)
        self.grants = GrantManager(db_manager)
        self.grouping = ReferralGrouping(db_manager)
        self.monitor = VestingGroupMonitor(db_manager)
        self.gamble = GambleEngine(db_manager, rng=rng)

        self.status = StakingStatus.IDLE
        self.last_report: Optional[CycleReport] = None
        self.cycles_run = 0
        self._cycle_lock = threading.Lock()
        self.domain_log = get_domain_logger()

        logger.info("🚀 StakingManager инициализирован")

    def run_cycle(self, now: Optional[datetime] = None) -> CycleReport:
        """
        Выполнить один цикл.

        Повторный запуск для того же тика не начисляет очки повторно.

        Returns:
            CycleReport: Итоги цикла
        """
        started = time.time()
        now = now or utc_now()
        report = CycleReport(cycle_time=now, tick=tick_index(now))

        with self._cycle_lock:
            self.status = StakingStatus.RUNNING
            logger.info(f"🔄 Cycle started: {now.isoformat()} (tick {report.tick})")

            try:
                self._step("complete_expired", report, self._complete_expired, now, report)
                self._step("stakes", report, self._process_stakes, now, report)
                self._step("grants", report, self._process_grants, now, report)
                self._step("confirm_referrals", report, self._confirm_referrals, now, report)
                self._step("grouping", report, self._form_groups, now, report)
                self._step("vesting", report, self._resolve_groups, now, report)
            finally:
                report.processing_time = time.time() - started
                self.status = StakingStatus.ERROR if report.errors else StakingStatus.IDLE
                self.last_report = report
                self.cycles_run += 1

        self.domain_log.log_cycle_summary({
            "tick": report.tick,
            "stakes": f"{report.processed_stakes} processed, {report.accrued_stakes} accrued, "
                      f"{report.forfeited_stakes} forfeited, {report.deferred_stakes} deferred",
            "grants": f"{report.processed_grants} processed, {report.accrued_grants} accrued",
            "points": format_points(report.points_awarded),
            "referrals confirmed": report.confirmed_referrals,
            "groups": f"+{report.groups_created}, claimable {report.groups_claimable}, "
                      f"forfeited {report.groups_forfeited}",
            "errors": len(report.errors),
            "time": f"{report.processing_time:.2f}s",
        })
        return report

    def _step(self, name: str, report: CycleReport, func, *args) -> None:
        # Ошибка шага не прерывает остальные шаги
        try:
            func(*args)
        except Exception as e:
            report.errors.append(f"{name}: {type(e).__name__}: {e}")
            self.domain_log.log_error_with_context(e, {"step": name, "tick": report.tick})

    def _complete_expired(self, now: datetime, report: CycleReport) -> None:
        report.completed_stakes = self.ledger.complete_expired(now)

    def _process_stakes(self, now: datetime, report: CycleReport) -> None:
        with self.db.get_session() as session:
            stakes: List[Stake] = self.ledger.list_active(session)
        report.processed_stakes = len(stakes)
        if not stakes:
            return

        results = self.verifier.verify_many(
            [(stake.asset_id, stake.wallet) for stake in stakes],
            timeout=self.ownership_timeout,
        )

        for stake in stakes:
            try:
                result = results[(stake.asset_id, stake.wallet)]
                decision = decide(result, self.forfeit_on_unknown)

                if decision == OwnershipDecision.ACCRUE:
                    with self.db.get_session() as session:
                        amount = self.accrual.accrue_stake(session, stake, report.tick, now)
                    if amount:
                        report.accrued_stakes += 1
                        report.points_awarded += amount
                elif decision == OwnershipDecision.FORFEIT:
                    if self.ledger.forfeit(stake.id, result.forfeiture_reason(), now, result.reason):
                        report.forfeited_stakes += 1
                else:
                    report.deferred_stakes += 1
                    logger.warning(f"⏸️ Stake #{stake.id} deferred: {result.reason}")
            except Exception as e:
                report.errors.append(f"stake#{stake.id}: {type(e).__name__}: {e}")
                self.domain_log.log_error_with_context(e, {"stake_id": stake.id, "asset_id": stake.asset_id})

    def _process_grants(self, now: datetime, report: CycleReport) -> None:
        with self.db.get_session() as session:
            grants = self.grants.active_grants(session, now)
        report.processed_grants = len(grants)

        for grant in grants:
            try:
                with self.db.get_session() as session:
                    amount = self.accrual.accrue_grant(session, grant, report.tick, now)
                if amount:
                    report.accrued_grants += 1
                    report.points_awarded += amount
            except Exception as e:
                report.errors.append(f"grant#{grant.id}: {type(e).__name__}: {e}")
                self.domain_log.log_error_with_context(e, {"grant_id": grant.id, "wallet": grant.wallet})

    def _confirm_referrals(self, now: datetime, report: CycleReport) -> None:
        report.confirmed_referrals = self.referrals.confirm_matured(now)

    def _form_groups(self, now: datetime, report: CycleReport) -> None:
        report.groups_created = len(self.grouping.form_groups(now))

    def _resolve_groups(self, now: datetime, report: CycleReport) -> None:
        stats = self.monitor.resolve_groups(now)
        report.groups_claimable = stats["claimable"]
        report.groups_forfeited = stats["forfeited"]
        if stats["errors"]:
            report.errors.append(f"vesting: {stats['errors']} group(s) failed")

    def get_status(self) -> Dict[str, Any]:
        """
        Текущий статус движка.

        Returns:
            Dict: Статус, число циклов, итоги последнего цикла
        """
        return {
            "status": self.status.value,
            "cycles_run": self.cycles_run,
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
        }


__all__ = ['StakingManager', 'StakingStatus', 'CycleReport']
