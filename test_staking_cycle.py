"""
NFT Staking Rewards Engine - Тесты цикла начисления
Проверка владения → начисление / потеря / отсрочка, гранты, рефералы, планировщик
"""

import threading
import unittest
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from blockchain.ownership_verifier import OwnershipVerifier, OwnershipOutcome
from config.constants import Tier, StakeStatus, ReferralStatus, GroupStatus
from core.grant_manager import GrantManager
from core.scheduler import CycleScheduler
from core.stake_intake import StakeIntake
from core.staking_manager import StakingManager, StakingStatus
from db.models import Stake, Referral, Forfeiture, ReferralGroup
from staking_fixtures import (
    NOW, NEXT_TICK, WALLET_A, WALLET_B, WALLET_C, REFERRER,
    FakeLedgerClient, StubVerifier, asset, make_db, rpc_down, seed_profile, seed_stake
)


class CycleTestCase(unittest.TestCase):

    def setUp(self):
        self.db = make_db()
        self.verifier = StubVerifier()
        self.manager = StakingManager(self.db, self.verifier)

    def tearDown(self):
        self.db.close()

    def _points(self, wallet, tier):
        return Decimal(self.manager.accrual.get_balance(wallet)[f"{tier.value.lower()}_points"])

    def _get(self, model, row_id):
        with self.db.get_session() as session:
            return session.get(model, row_id)


class TestStakeProcessing(CycleTestCase):
    """Решение по каждому активному стейку"""

    def test_owned_stake_accrues(self):
        seed_stake(self.db, WALLET_A, asset(1), tier="Council", months=1)

        report = self.manager.run_cycle(NOW)

        self.assertEqual(report.processed_stakes, 1)
        self.assertEqual(report.accrued_stakes, 1)
        self.assertEqual(report.points_awarded, Decimal("50"))
        self.assertEqual(report.errors, [])
        self.assertEqual(self._points(WALLET_A, Tier.COUNCIL), Decimal("50"))
        self.assertEqual(self.manager.status, StakingStatus.IDLE)

    def test_rerun_of_same_tick_does_not_double(self):
        seed_stake(self.db, WALLET_A, asset(1), tier="Council", months=1)

        self.manager.run_cycle(NOW)
        rerun = self.manager.run_cycle(NOW + timedelta(minutes=1))
        self.assertEqual(rerun.accrued_stakes, 0)
        self.assertEqual(self._points(WALLET_A, Tier.COUNCIL), Decimal("50"))

        self.manager.run_cycle(NEXT_TICK)
        self.assertEqual(self._points(WALLET_A, Tier.COUNCIL), Decimal("100"))

    def test_kiosk_held_stake_accrues(self):
        seed_stake(self.db, WALLET_A, asset(1), tier="Voter", months=3)
        self.verifier.outcomes[asset(1)] = OwnershipOutcome.HELD_IN_OWNED_CONTAINER

        self.manager.run_cycle(NOW)
        self.assertEqual(self._points(WALLET_A, Tier.VOTER), Decimal("4"))

    def test_transferred_stake_is_forfeited_with_cascade(self):
        ids = seed_stake(self.db, WALLET_A, asset(1), tier="Governor", referrer=REFERRER)
        self.verifier.outcomes[asset(1)] = OwnershipOutcome.TRANSFERRED

        report = self.manager.run_cycle(NOW)

        self.assertEqual(report.forfeited_stakes, 1)
        self.assertEqual(self._get(Stake, ids["stake_id"]).status, StakeStatus.FORFEITED.value)
        self.assertEqual(self._get(Referral, ids["referral_id"]).status, ReferralStatus.FORFEITED.value)
        self.assertEqual(self._points(WALLET_A, Tier.GOVERNOR), Decimal("0"))

    def test_listed_stake_is_forfeited_as_listed(self):
        ids = seed_stake(self.db, WALLET_A, asset(1))
        self.verifier.outcomes[asset(1)] = OwnershipOutcome.HELD_IN_OWNED_CONTAINER
        self.verifier.listed = True

        self.manager.run_cycle(NOW)

        with self.db.get_session() as session:
            record = session.query(Forfeiture).filter_by(stake_id=ids["stake_id"]).one()
        self.assertEqual(record.reason, "listed")

    def test_forfeited_stake_is_not_checked_again(self):
        seed_stake(self.db, WALLET_A, asset(1))
        self.verifier.outcomes[asset(1)] = OwnershipOutcome.TRANSFERRED
        self.manager.run_cycle(NOW)

        report = self.manager.run_cycle(NEXT_TICK)
        self.assertEqual(report.processed_stakes, 0)
        self.assertEqual(len(self.verifier.calls), 1)

    def test_unknown_outcome_is_deferred(self):
        ids = seed_stake(self.db, WALLET_A, asset(1), tier="Council")
        self.verifier.outcomes[asset(1)] = OwnershipOutcome.UNKNOWN

        report = self.manager.run_cycle(NOW)

        self.assertEqual(report.deferred_stakes, 1)
        self.assertEqual(report.forfeited_stakes, 0)
        self.assertEqual(self._get(Stake, ids["stake_id"]).status, StakeStatus.ACTIVE.value)
        self.assertEqual(self._points(WALLET_A, Tier.COUNCIL), Decimal("0"))

        # Следующий цикл с доступным ledger начисляет как обычно
        self.verifier.outcomes[asset(1)] = OwnershipOutcome.OWNED
        self.assertEqual(self.manager.run_cycle(NEXT_TICK).accrued_stakes, 1)

    def test_legacy_policy_forfeits_unknown(self):
        manager = StakingManager(self.db, self.verifier, forfeit_on_unknown=True)
        ids = seed_stake(self.db, WALLET_A, asset(1))
        self.verifier.outcomes[asset(1)] = OwnershipOutcome.UNKNOWN

        self.assertEqual(manager.run_cycle(NOW).forfeited_stakes, 1)
        with self.db.get_session() as session:
            record = session.query(Forfeiture).filter_by(stake_id=ids["stake_id"]).one()
        self.assertEqual(record.reason, "transferred")

    def test_expired_stake_completes_without_check(self):
        ids = seed_stake(self.db, WALLET_A, asset(1), months=1, start_time=NOW - timedelta(days=31))

        report = self.manager.run_cycle(NOW)

        self.assertEqual(report.completed_stakes, 1)
        self.assertEqual(report.processed_stakes, 0)
        self.assertEqual(self.verifier.calls, [])
        self.assertEqual(self._get(Stake, ids["stake_id"]).status, StakeStatus.COMPLETED.value)

    def test_stake_ending_exactly_now_completes(self):
        seed_stake(self.db, WALLET_A, asset(1), months=1, start_time=NOW - timedelta(days=30))
        self.assertEqual(self.manager.run_cycle(NOW).completed_stakes, 1)


class TestGrantProcessing(CycleTestCase):
    """Ручные гранты в цикле"""

    def test_active_grant_accrues(self):
        GrantManager(self.db).create_grant(WALLET_B, "Voter", start_time=NOW - timedelta(days=1))

        report = self.manager.run_cycle(NOW)

        self.assertEqual(report.processed_grants, 1)
        self.assertEqual(report.accrued_grants, 1)
        self.assertEqual(self._points(WALLET_B, Tier.VOTER), Decimal("2"))

    def test_expired_and_inactive_grants_skipped(self):
        grants = GrantManager(self.db)
        grants.create_grant(WALLET_B, "Council", start_time=NOW - timedelta(days=3),
                            end_time=NOW - timedelta(days=1))
        inactive = grants.create_grant(WALLET_C, "Council", start_time=NOW - timedelta(days=3))
        grants.deactivate_grant(inactive["id"])

        report = self.manager.run_cycle(NOW)

        self.assertEqual(report.processed_grants, 0)
        self.assertEqual(self._points(WALLET_B, Tier.COUNCIL), Decimal("0"))

    def test_scheduled_grant_waits_for_start(self):
        grants = GrantManager(self.db)
        grants.create_grant(WALLET_B, "Voter", start_time=NOW + timedelta(days=7))

        self.assertEqual(self.manager.run_cycle(NOW).processed_grants, 0)
        self.assertEqual(grants.list_active_grants(WALLET_B, now=NOW), [])
        self.assertEqual(self._points(WALLET_B, Tier.VOTER), Decimal("0"))

        self.assertEqual(self.manager.run_cycle(NOW + timedelta(days=7)).accrued_grants, 1)
        self.assertEqual(self._points(WALLET_B, Tier.VOTER), Decimal("2"))


class TestFailureIsolation(CycleTestCase):
    """Ошибка одного элемента или шага не останавливает цикл"""

    def test_real_verifier_isolates_items(self):
        client = FakeLedgerClient(owners={
            asset(1): rpc_down(),
            asset(2): {"AddressOwner": WALLET_B},
            asset(3): RuntimeError("malformed owner"),
        })
        manager = StakingManager(self.db, OwnershipVerifier(client, [], max_workers=3), ownership_timeout=5)
        seed_stake(self.db, WALLET_A, asset(1), tier="Voter")
        seed_stake(self.db, WALLET_B, asset(2), tier="Voter")
        seed_stake(self.db, WALLET_C, asset(3), tier="Voter")

        report = manager.run_cycle(NOW)

        self.assertEqual(report.processed_stakes, 3)
        self.assertEqual(report.accrued_stakes, 1)
        self.assertEqual(report.deferred_stakes, 2)
        self.assertEqual(report.forfeited_stakes, 0)
        self.assertEqual(self._points(WALLET_B, Tier.VOTER), Decimal("2"))

    def test_failed_step_does_not_stop_others(self):
        seed_stake(self.db, WALLET_A, asset(1), tier="Council")
        GrantManager(self.db).create_grant(WALLET_B, "Voter", start_time=NOW - timedelta(days=1))

        with mock.patch.object(self.manager.grants, "active_grants", side_effect=RuntimeError("boom")):
            report = self.manager.run_cycle(NOW)

        self.assertEqual(report.accrued_stakes, 1)
        self.assertTrue(any(error.startswith("grants:") for error in report.errors))
        self.assertEqual(self.manager.status, StakingStatus.ERROR)

    def test_failed_accrual_of_one_stake(self):
        seed_stake(self.db, WALLET_A, asset(1), tier="Council")
        seed_stake(self.db, WALLET_B, asset(2), tier="Council")
        original = self.manager.accrual.accrue_stake

        def flaky(session, stake, tick, now):
            if stake.wallet == WALLET_A:
                raise RuntimeError("storage hiccup")
            return original(session, stake, tick, now)

        with mock.patch.object(self.manager.accrual, "accrue_stake", side_effect=flaky):
            report = self.manager.run_cycle(NOW)

        self.assertEqual(report.accrued_stakes, 1)
        self.assertEqual(len(report.errors), 1)
        self.assertEqual(self._points(WALLET_B, Tier.COUNCIL), Decimal("50"))

    def test_report_serializes(self):
        seed_stake(self.db, WALLET_A, asset(1), tier="Council")
        data = self.manager.run_cycle(NOW).to_dict()

        self.assertEqual(data["points_awarded"], "50.0000")
        self.assertEqual(data["cycle_time"], NOW.isoformat())
        self.assertEqual(self.manager.get_status()["cycles_run"], 1)


class TestReferralScenario(CycleTestCase):
    """Три реферала → когорта → созревание → claimable"""

    def test_group_becomes_claimable_after_ten_days(self):
        seed_profile(self.db, REFERRER, "REF-CODE")
        intake = StakeIntake(self.db)
        for n, wallet in enumerate((WALLET_A, WALLET_B, WALLET_C), start=1):
            intake.open_stake(wallet, asset(n), "Governor", 90, 3, referral_code="REF-CODE",
                              now=NOW + timedelta(minutes=n))

        first = self.manager.run_cycle(NOW + timedelta(minutes=10))
        self.assertEqual(first.groups_created, 1)
        self.assertEqual(first.accrued_stakes, 3)
        self.assertEqual(self._points(WALLET_A, Tier.GOVERNOR), Decimal("20"))

        midway = self.manager.run_cycle(NOW + timedelta(days=5))
        self.assertEqual(midway.confirmed_referrals, 0)
        self.assertEqual(midway.groups_claimable, 0)

        final = self.manager.run_cycle(NOW + timedelta(days=10, minutes=10))
        self.assertEqual(final.confirmed_referrals, 3)
        self.assertEqual(final.groups_claimable, 1)
        with self.db.get_session() as session:
            group = session.query(ReferralGroup).one()
        self.assertEqual(group.status, GroupStatus.CLAIMABLE.value)

    def test_forfeited_referral_forfeits_group(self):
        seed_profile(self.db, REFERRER, "REF-CODE")
        intake = StakeIntake(self.db)
        for n, wallet in enumerate((WALLET_A, WALLET_B, WALLET_C), start=1):
            intake.open_stake(wallet, asset(n), "Voter", 30, 1, referral_code="REF-CODE", now=NOW)
        self.manager.run_cycle(NOW + timedelta(minutes=10))

        self.verifier.outcomes[asset(2)] = OwnershipOutcome.TRANSFERRED
        report = self.manager.run_cycle(NOW + timedelta(days=1))

        self.assertEqual(report.forfeited_stakes, 1)
        self.assertEqual(report.groups_forfeited, 1)
        with self.db.get_session() as session:
            unmapped = session.query(Referral).filter_by(is_mapped_to_reward=False).count()
        self.assertEqual(unmapped, 2)


class TestCycleScheduler(unittest.TestCase):
    """Тик пропускается, пока предыдущий цикл выполняется"""

    def test_overlapping_tick_is_skipped(self):
        release = threading.Event()
        started = threading.Event()
        manager = mock.Mock()

        def slow_cycle():
            started.set()
            release.wait(5)

        manager.run_cycle.side_effect = slow_cycle
        scheduler = CycleScheduler(manager, interval_minutes=10)

        self.assertTrue(scheduler.trigger())
        self.assertTrue(started.wait(5))
        self.assertFalse(scheduler.trigger())
        self.assertEqual(scheduler.skipped_ticks, 1)

        release.set()
        self.assertTrue(scheduler.wait_for_idle(5))
        self.assertEqual(manager.run_cycle.call_count, 1)

    def test_cycle_failure_releases_lock(self):
        manager = mock.Mock()
        manager.run_cycle.side_effect = RuntimeError("db down")
        scheduler = CycleScheduler(manager)

        self.assertTrue(scheduler.trigger())
        self.assertTrue(scheduler.wait_for_idle(5))
        self.assertFalse(scheduler.is_cycle_running())

    def test_scheduler_job_registered(self):
        scheduler = CycleScheduler(mock.Mock(), interval_minutes=10)
        self.assertEqual(len(scheduler.scheduler.jobs), 1)
        self.assertEqual(scheduler.scheduler.jobs[0].interval, 10)


if __name__ == "__main__":
    unittest.main()
