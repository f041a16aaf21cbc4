"""
NFT Staking Rewards Engine - Тесты gamble
Выигрыш, проигрыш, однократность, права и распределение исходов
"""

import random
import unittest
from datetime import timedelta

from sqlalchemy import update

from config.constants import GroupStatus, GambleStatus
from core.errors import ConflictError, ForbiddenError, NotFoundError
from core.gamble_engine import GambleEngine, WIN_MESSAGE, LOSE_MESSAGE
from db.models import ReferralGroup
from staking_fixtures import NOW, REFERRER, WALLET_B, SequenceRandom, make_db


class CompetingLossRandom:
    """rng, во время броска которого параллельный запрос уже проиграл gamble"""

    def __init__(self, db, group_id, value):
        self.db = db
        self.group_id = group_id
        self.value = value

    def random(self):
        with self.db.get_session() as session:
            session.execute(
                update(ReferralGroup)
                .where(ReferralGroup.id == self.group_id)
                .values(gamble_status=GambleStatus.LOST.value, vesting_end=NOW + timedelta(days=20))
            )
        return self.value


class TestGambleEngine(unittest.TestCase):
    """Однократная игра для когорты в вестинге"""

    def setUp(self):
        self.db = make_db()

    def tearDown(self):
        self.db.close()

    def _group(self, status=GroupStatus.VESTING, gamble=GambleStatus.OFFERED):
        # Членство для gamble не важно: id рефералов без FK проверки в SQLite
        with self.db.get_session() as session:
            group = ReferralGroup(
                referrer_wallet=REFERRER,
                tier="Council",
                referral_1_id=1,
                referral_2_id=2,
                referral_3_id=3,
                status=status.value,
                gamble_status=gamble.value,
                vesting_start=NOW,
                vesting_end=NOW + timedelta(days=10),
            )
            session.add(group)
            session.flush()
            return group.id

    def _load(self, group_id):
        with self.db.get_session() as session:
            return session.get(ReferralGroup, group_id)

    def test_win_makes_group_claimable(self):
        group_id = self._group()
        outcome = GambleEngine(self.db, rng=SequenceRandom(0.05)).play(group_id, REFERRER, now=NOW)

        self.assertEqual(outcome["result"], "won")
        self.assertEqual(outcome["message"], WIN_MESSAGE)
        self.assertEqual(outcome["group"]["status"], "claimable")
        group = self._load(group_id)
        self.assertEqual(group.status, GroupStatus.CLAIMABLE.value)
        self.assertEqual(group.gamble_status, GambleStatus.WON.value)
        self.assertEqual(group.vesting_end, NOW + timedelta(days=10))

    def test_loss_extends_vesting(self):
        group_id = self._group()
        outcome = GambleEngine(self.db, rng=SequenceRandom(0.5)).play(group_id, REFERRER, now=NOW)

        self.assertEqual(outcome["result"], "lost")
        self.assertEqual(outcome["message"], LOSE_MESSAGE)
        group = self._load(group_id)
        self.assertEqual(group.status, GroupStatus.VESTING.value)
        self.assertEqual(group.gamble_status, GambleStatus.LOST.value)
        self.assertEqual(group.vesting_end, NOW + timedelta(days=20))
        self.assertEqual(outcome["group"]["vesting_end"], (NOW + timedelta(days=20)).isoformat())

    def test_boundary_value_loses(self):
        group_id = self._group()
        outcome = GambleEngine(self.db, rng=SequenceRandom(0.10)).play(group_id, REFERRER, now=NOW)
        self.assertEqual(outcome["result"], "lost")

    def test_second_play_is_rejected(self):
        group_id = self._group()
        engine = GambleEngine(self.db, rng=SequenceRandom(0.5))
        engine.play(group_id, REFERRER, now=NOW)

        with self.assertRaises(ConflictError) as ctx:
            engine.play(group_id, REFERRER, now=NOW)
        self.assertEqual(ctx.exception.code, "gamble_unavailable")
        self.assertEqual(self._load(group_id).vesting_end, NOW + timedelta(days=20))

    def test_concurrent_play_is_rejected_at_write(self):
        for value in (0.05, 0.5):
            with self.subTest(value=value):
                group_id = self._group()
                engine = GambleEngine(self.db, rng=CompetingLossRandom(self.db, group_id, value))

                with self.assertRaises(ConflictError) as ctx:
                    engine.play(group_id, REFERRER, now=NOW)

                self.assertEqual(ctx.exception.code, "gamble_unavailable")
                group = self._load(group_id)
                self.assertEqual(group.status, GroupStatus.VESTING.value)
                self.assertEqual(group.gamble_status, GambleStatus.LOST.value)
                self.assertEqual(group.vesting_end, NOW + timedelta(days=20))

    def test_resolved_group_cannot_gamble(self):
        for status in (GroupStatus.CLAIMABLE, GroupStatus.FORFEITED):
            group_id = self._group(status=status)
            with self.assertRaises(ConflictError):
                GambleEngine(self.db, rng=SequenceRandom(0.05)).play(group_id, REFERRER, now=NOW)

    def test_only_referrer_can_play(self):
        group_id = self._group()
        with self.assertRaises(ForbiddenError):
            GambleEngine(self.db, rng=SequenceRandom(0.05)).play(group_id, WALLET_B, now=NOW)
        self.assertEqual(self._load(group_id).gamble_status, GambleStatus.OFFERED.value)

    def test_wallet_case_is_ignored(self):
        group_id = self._group()
        outcome = GambleEngine(self.db, rng=SequenceRandom(0.5)).play(
            group_id, REFERRER.upper().replace("0X", "0x"), now=NOW
        )
        self.assertEqual(outcome["result"], "lost")

    def test_missing_group(self):
        with self.assertRaises(NotFoundError) as ctx:
            GambleEngine(self.db).play(999, REFERRER, now=NOW)
        self.assertEqual(ctx.exception.code, "group_not_found")

    def test_win_rate_is_about_ten_percent(self):
        engine = GambleEngine(self.db, rng=random.Random(20260115))
        group_ids = [self._group() for _ in range(1000)]

        wins = sum(1 for group_id in group_ids if engine.play(group_id, REFERRER, now=NOW)["result"] == "won")

        self.assertGreater(wins / len(group_ids), 0.06)
        self.assertLess(wins / len(group_ids), 0.14)


if __name__ == "__main__":
    unittest.main()
