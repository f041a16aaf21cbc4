"""
NFT Staking Rewards Engine - Тесты HTTP API
Аутентификация, коды ошибок и формат ответов эндпоинтов
"""

import unittest
from datetime import timedelta

from fastapi.testclient import TestClient

from api.security import sign_wallet_token, verify_wallet_token, bearer_token
from api.server import create_app
from config.settings import create_test_settings
from core.errors import AuthError
from db.models import ReferralGroup
from staking_fixtures import (
    NOW, WALLET_A, WALLET_B, REFERRER, SequenceRandom, StubVerifier, asset, make_db, seed_profile
)

STAKE_HEADERS = {"X-Stake-Api-Secret": "test-stake-secret"}
ADMIN_HEADERS = {"X-Admin-Api-Secret": "test-admin-secret"}


def wallet_headers(wallet, secret="test-session-secret"):
    return {"Authorization": f"Bearer {sign_wallet_token(wallet, secret)}"}


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self.settings = create_test_settings()
        self.db = make_db()
        self.verifier = StubVerifier()
        self.app = create_app(self.settings, db_manager=self.db, verifier=self.verifier,
                              rng=SequenceRandom(0.05))
        self.client = TestClient(self.app)

    def tearDown(self):
        self.client.close()
        self.db.close()

    def _stake_body(self, **overrides):
        body = {
            "wallet": WALLET_A,
            "asset_id": asset(1),
            "tier": "Council",
            "duration_days": 30,
            "duration_months": 1,
        }
        body.update(overrides)
        return body

    def _error_code(self, response):
        payload = response.json()
        self.assertFalse(payload["success"])
        return payload["error"]["code"]


class TestWalletTokens(unittest.TestCase):
    """Подписанные токены сессии кошелька"""

    def test_round_trip(self):
        token = sign_wallet_token(WALLET_A.upper().replace("0X", "0x"), "secret")
        self.assertEqual(verify_wallet_token(token, "secret"), WALLET_A)

    def test_wrong_secret_rejected(self):
        with self.assertRaises(AuthError):
            verify_wallet_token(sign_wallet_token(WALLET_A, "secret"), "other")

    def test_tampered_wallet_rejected(self):
        signature = sign_wallet_token(WALLET_A, "secret").rpartition(".")[2]
        with self.assertRaises(AuthError):
            verify_wallet_token(f"{WALLET_B}.{signature}", "secret")

    def test_bearer_parsing(self):
        self.assertEqual(bearer_token("Bearer abc"), "abc")
        self.assertIsNone(bearer_token("Basic abc"))
        self.assertIsNone(bearer_token(None))


class TestCycleEndpoint(ApiTestCase):

    def test_requires_credentials(self):
        response = self.client.post("/cycle")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self._error_code(response), "unauthorized")

    def test_wrong_secret(self):
        response = self.client.post("/cycle", headers={"X-Cron-Secret": "nope"})
        self.assertEqual(response.status_code, 401)

    def test_cron_secret(self):
        response = self.client.post("/cycle", headers={"X-Cron-Secret": "test-cron-secret"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["processed_stakes"], 0)
        self.assertEqual(payload["processed_grants"], 0)

    def test_bearer_token_and_processed_counts(self):
        self.client.post("/stake", json=self._stake_body(), headers=STAKE_HEADERS)

        response = self.client.post("/cycle", headers={"Authorization": "Bearer test-cycle-token"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["processed_stakes"], 1)
        self.assertEqual(response.json()["report"]["accrued_stakes"], 1)

    def test_unconfigured_secret_never_matches(self):
        app = create_app(create_test_settings(cron_secret="", cycle_bearer_token=""),
                         db_manager=self.db, verifier=self.verifier)
        with TestClient(app) as client:
            response = client.post("/cycle", headers={"X-Cron-Secret": ""})
        self.assertEqual(response.status_code, 401)


class TestStakeEndpoint(ApiTestCase):

    def test_requires_secret(self):
        response = self.client.post("/stake", json=self._stake_body())
        self.assertEqual(response.status_code, 401)

    def test_stake_created(self):
        response = self.client.post("/stake", json=self._stake_body(), headers=STAKE_HEADERS)

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["stake"]["asset_id"], asset(1))
        self.assertEqual(payload["stake"]["status"], "active")

    def test_stake_with_referral(self):
        seed_profile(self.db, REFERRER, "REF-CODE")
        response = self.client.post("/stake", json=self._stake_body(referral_code="REF-CODE"),
                                    headers=STAKE_HEADERS)
        self.assertIsNotNone(response.json()["stake"]["referral_id"])

    def test_duplicate_asset(self):
        self.client.post("/stake", json=self._stake_body(), headers=STAKE_HEADERS)
        response = self.client.post("/stake", json=self._stake_body(wallet=WALLET_B), headers=STAKE_HEADERS)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(self._error_code(response), "asset_already_staked")

    def test_missing_field(self):
        body = self._stake_body()
        del body["tier"]
        response = self.client.post("/stake", json=body, headers=STAKE_HEADERS)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self._error_code(response), "invalid_request")

    def test_invalid_tier(self):
        response = self.client.post("/stake", json=self._stake_body(tier="voter"), headers=STAKE_HEADERS)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self._error_code(response), "invalid_tier")

    def test_invalid_duration(self):
        response = self.client.post("/stake", json=self._stake_body(duration_days=10), headers=STAKE_HEADERS)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self._error_code(response), "invalid_duration")


class TestGambleEndpoint(ApiTestCase):

    def _group(self):
        with self.db.get_session() as session:
            group = ReferralGroup(
                referrer_wallet=REFERRER, tier="Voter",
                referral_1_id=1, referral_2_id=2, referral_3_id=3,
                status="vesting", gamble_status="offered",
                vesting_start=NOW, vesting_end=NOW + timedelta(days=10),
            )
            session.add(group)
            session.flush()
            return group.id

    def test_requires_session(self):
        response = self.client.post("/gamble", json={"group_id": self._group(), "wallet": REFERRER})
        self.assertEqual(response.status_code, 401)

    def test_wallet_mismatch(self):
        response = self.client.post("/gamble", json={"group_id": self._group(), "wallet": REFERRER},
                                    headers=wallet_headers(WALLET_A))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self._error_code(response), "forbidden")

    def test_win(self):
        group_id = self._group()
        response = self.client.post("/gamble", json={"group_id": group_id, "wallet": REFERRER},
                                    headers=wallet_headers(REFERRER))

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["result"], "won")
        self.assertEqual(payload["group"]["status"], "claimable")

        again = self.client.post("/gamble", json={"group_id": group_id, "wallet": REFERRER},
                                 headers=wallet_headers(REFERRER))
        self.assertEqual(again.status_code, 409)
        self.assertEqual(self._error_code(again), "gamble_unavailable")

    def test_other_referrers_group(self):
        group_id = self._group()
        response = self.client.post("/gamble", json={"group_id": group_id, "wallet": WALLET_A},
                                    headers=wallet_headers(WALLET_A))
        self.assertEqual(response.status_code, 403)

    def test_missing_group(self):
        response = self.client.post("/gamble", json={"group_id": 404, "wallet": REFERRER},
                                    headers=wallet_headers(REFERRER))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self._error_code(response), "group_not_found")


class TestWalletViews(ApiTestCase):

    def test_rewards_require_own_token(self):
        self.assertEqual(self.client.get(f"/rewards/{WALLET_A}").status_code, 401)
        self.assertEqual(self.client.get(f"/rewards/{WALLET_A}", headers=wallet_headers(WALLET_B)).status_code, 403)

    def test_rewards_after_cycle(self):
        self.client.post("/stake", json=self._stake_body(), headers=STAKE_HEADERS)
        self.client.post("/cycle", headers={"X-Cron-Secret": "test-cron-secret"})

        response = self.client.get(f"/rewards/{WALLET_A}", headers=wallet_headers(WALLET_A))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["rewards"]["council_points"], "50.0000")

    def test_rewards_default_zero(self):
        response = self.client.get(f"/rewards/{WALLET_B}", headers=wallet_headers(WALLET_B))
        self.assertEqual(response.json()["rewards"]["voter_points"], "0")

    def test_dashboard(self):
        seed_profile(self.db, WALLET_A, "A-CODE")
        self.client.post("/stake", json=self._stake_body(), headers=STAKE_HEADERS)

        response = self.client.get(f"/dashboard/{WALLET_A}", headers=wallet_headers(WALLET_A))

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["referral_code"], "A-CODE")
        self.assertEqual(len(payload["stakes"]), 1)
        self.assertEqual(payload["groups"], [])


class TestAdminGrants(ApiTestCase):

    def test_requires_admin_secret(self):
        response = self.client.post("/admin/grants", json={"wallet": WALLET_B, "tier": "Voter"})
        self.assertEqual(response.status_code, 401)

    def test_grant_lifecycle(self):
        created = self.client.post("/admin/grants", json={"wallet": WALLET_B, "tier": "Governor",
                                                          "notes": "partner"}, headers=ADMIN_HEADERS)
        self.assertEqual(created.status_code, 200)
        grant_id = created.json()["grant"]["id"]

        listed = self.client.get(f"/grants/{WALLET_B}", headers=wallet_headers(WALLET_B))
        self.assertEqual([grant["id"] for grant in listed.json()["grants"]], [grant_id])

        deactivated = self.client.post(f"/admin/grants/{grant_id}/deactivate", headers=ADMIN_HEADERS)
        self.assertEqual(deactivated.json()["grant"]["status"], "inactive")

        listed = self.client.get(f"/grants/{WALLET_B}", headers=wallet_headers(WALLET_B))
        self.assertEqual(listed.json()["grants"], [])

    def test_invalid_period(self):
        response = self.client.post("/admin/grants", json={
            "wallet": WALLET_B, "tier": "Voter",
            "start_time": "2026-02-01T00:00:00Z", "end_time": "2026-01-01T00:00:00Z",
        }, headers=ADMIN_HEADERS)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self._error_code(response), "invalid_grant_period")

    def test_unknown_grant(self):
        response = self.client.post("/admin/grants/999/deactivate", headers=ADMIN_HEADERS)
        self.assertEqual(response.status_code, 404)


class TestHealth(ApiTestCase):

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["storage"])
        self.assertEqual(payload["engine"]["status"], "idle")


if __name__ == "__main__":
    unittest.main()
