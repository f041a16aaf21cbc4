"""
NFT Staking Rewards Engine - Тесты переходов статусов
Таблицы переходов и их применение в реестре стейков
"""

import unittest
from datetime import timedelta

from config.constants import (
    StakeStatus, ReferralStatus, GroupStatus, GambleStatus, ForfeitureReason
)
from core.errors import IllegalTransitionError
from core.stake_ledger import StakeLedger
from core.state_machine import can_transition, ensure_transition, sources_of
from db.models import Stake, Forfeiture
from staking_fixtures import NOW, WALLET_A, REFERRER, asset, make_db, seed_stake


class TestTransitionTables(unittest.TestCase):
    """Разрешённые и запрещённые переходы"""

    def test_active_stake_can_end_either_way(self):
        ensure_transition(StakeStatus.ACTIVE, StakeStatus.COMPLETED)
        ensure_transition(StakeStatus.ACTIVE, StakeStatus.FORFEITED)

    def test_terminal_stake_statuses(self):
        with self.assertRaises(IllegalTransitionError):
            ensure_transition(StakeStatus.COMPLETED, StakeStatus.FORFEITED, "stake#1")
        with self.assertRaises(IllegalTransitionError):
            ensure_transition(StakeStatus.FORFEITED, StakeStatus.ACTIVE, "stake#1")

    def test_gamble_is_played_once(self):
        self.assertTrue(can_transition(GambleStatus.OFFERED, GambleStatus.LOST))
        self.assertFalse(can_transition(GambleStatus.LOST, GambleStatus.WON))
        with self.assertRaises(IllegalTransitionError):
            ensure_transition(GambleStatus.WON, GambleStatus.LOST, "group#1 gamble")

    def test_confirmed_referral_can_still_be_forfeited(self):
        self.assertTrue(can_transition(ReferralStatus.CONFIRMED, ReferralStatus.FORFEITED))
        self.assertFalse(can_transition(ReferralStatus.FORFEITED, ReferralStatus.CONFIRMED))

    def test_mixed_status_types_rejected(self):
        with self.assertRaises(IllegalTransitionError):
            ensure_transition(GroupStatus.VESTING, GambleStatus.WON)

    def test_sources_of(self):
        self.assertEqual(sources_of(StakeStatus.COMPLETED), [StakeStatus.ACTIVE])
        self.assertEqual(sources_of(ReferralStatus.FORFEITED), [ReferralStatus.PENDING, ReferralStatus.CONFIRMED])
        self.assertEqual(sources_of(GroupStatus.VESTING), [])


class TestLedgerTransitions(unittest.TestCase):
    """Реестр стейков не выходит из терминальных статусов"""

    def setUp(self):
        self.db = make_db()
        self.ledger = StakeLedger(self.db)

    def tearDown(self):
        self.db.close()

    def test_completed_stake_is_not_forfeited(self):
        ids = seed_stake(self.db, WALLET_A, asset(1), status=StakeStatus.COMPLETED.value, referrer=REFERRER)

        self.assertFalse(self.ledger.forfeit(ids["stake_id"], ForfeitureReason.TRANSFERRED, NOW))

        with self.db.get_session() as session:
            self.assertEqual(session.get(Stake, ids["stake_id"]).status, StakeStatus.COMPLETED.value)
            self.assertEqual(session.query(Forfeiture).count(), 0)

    def test_missing_stake_is_not_forfeited(self):
        self.assertFalse(self.ledger.forfeit(404, ForfeitureReason.LISTED, NOW))

    def test_forfeited_stake_is_not_completed(self):
        start = NOW - timedelta(days=40)
        forfeited = seed_stake(self.db, WALLET_A, asset(1), start_time=start, status=StakeStatus.FORFEITED.value)
        active = seed_stake(self.db, WALLET_A, asset(2), start_time=start)

        self.assertEqual(self.ledger.complete_expired(NOW), 1)

        with self.db.get_session() as session:
            self.assertEqual(session.get(Stake, forfeited["stake_id"]).status, StakeStatus.FORFEITED.value)
            self.assertEqual(session.get(Stake, active["stake_id"]).status, StakeStatus.COMPLETED.value)


if __name__ == "__main__":
    unittest.main()
