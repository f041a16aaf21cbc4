"""
Общие тестовые данные и двойники для тестов NFT Staking Rewards Engine
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from blockchain.ownership_verifier import OwnershipResult, OwnershipOutcome
from config.constants import ReferralStatus, StakeStatus
from core.errors import UpstreamError
from db.database import DatabaseManager
from db.models import Stake, Referral, Profile

NOW = datetime(2026, 1, 15, 12, 0, 0)
NEXT_TICK = NOW + timedelta(minutes=10)

WALLET_A = "0x" + "a" * 64
WALLET_B = "0x" + "b" * 64
WALLET_C = "0x" + "c" * 64
REFERRER = "0x" + "d" * 64
MARKETPLACE = "0x" + "e" * 64
KIOSK_ID = "0x" + "f" * 64


def asset(n: int) -> str:
    return "0x" + format(n, "064x")


def make_db() -> DatabaseManager:
    """In-memory SQLite со всеми таблицами"""
    return DatabaseManager("sqlite:///:memory:").initialize()


def seed_profile(db: DatabaseManager, wallet: str, referral_code: str, username: Optional[str] = None):
    with db.get_session() as session:
        session.add(Profile(wallet=wallet, referral_code=referral_code, username=username))


def seed_stake(db: DatabaseManager, wallet: str, asset_id: str, tier: str = "Voter",
               months: int = 1, start_time: datetime = NOW - timedelta(days=1),
               status: str = StakeStatus.ACTIVE.value, referrer: Optional[str] = None,
               referral_status: str = ReferralStatus.PENDING.value,
               referral_created_at: Optional[datetime] = None) -> Dict[str, Optional[int]]:
    """
    Стейк и, при заданном referrer, реферал напрямую в БД.

    Returns:
        Dict: {'stake_id': ..., 'referral_id': ...}
    """
    with db.get_session() as session:
        referral = None
        if referrer:
            referral = Referral(
                referrer_wallet=referrer,
                status=referral_status,
                is_mapped_to_reward=False,
                created_at=referral_created_at or start_time,
            )
            session.add(referral)
            session.flush()

        stake = Stake(
            wallet=wallet,
            asset_id=asset_id,
            tier=tier,
            duration_months=months,
            duration_days=months * 30,
            start_time=start_time,
            end_time=start_time + timedelta(days=months * 30),
            status=status,
            referral_id=referral.id if referral else None,
            referral_code_used="CODE" if referral else None,
        )
        session.add(stake)
        session.flush()
        if referral is not None:
            referral.stake_id = stake.id
        return {"stake_id": stake.id, "referral_id": referral.id if referral else None}


class StubVerifier:
    """Проверка владения по заранее заданным исходам (по asset_id)"""

    def __init__(self, outcomes: Optional[Dict[str, OwnershipOutcome]] = None, listed: bool = False):
        self.outcomes = outcomes or {}
        self.listed = listed
        self.calls: List[List] = []
        self.client = None

    def verify_many(self, items, timeout=None):
        self.calls.append(list(items))
        results = {}
        for asset_id, wallet in items:
            outcome = self.outcomes.get(asset_id, OwnershipOutcome.OWNED)
            listed = self.listed and outcome == OwnershipOutcome.HELD_IN_OWNED_CONTAINER
            results[(asset_id, wallet)] = OwnershipResult(asset_id, wallet, outcome, listed=listed,
                                                          reason=f"stub {outcome.value}")
        return results


class FakeLedgerClient:
    """
    Сценарный двойник SuiRpcClient.

    owners: asset_id → owner dict (или исключение)
    caps: wallet → список kiosk id (страницами по page_size)
    fields: kiosk_id → список dynamic field записей
    field_objects: (kiosk_id, name.value) → ответ get_dynamic_field_object
    """

    def __init__(self, owners=None, caps=None, fields=None, field_objects=None, page_size: int = 50):
        self.owners = owners or {}
        self.caps = caps or {}
        self.fields = fields or {}
        self.field_objects = field_objects or {}
        self.page_size = page_size
        self.calls: List[tuple] = []

    def get_object_owner(self, object_id):
        self.calls.append(("owner", object_id))
        owner = self.owners.get(object_id)
        if isinstance(owner, Exception):
            raise owner
        return owner

    def _page(self, items, cursor):
        start = int(cursor or 0)
        chunk = items[start:start + self.page_size]
        has_next = start + self.page_size < len(items)
        return {"data": chunk, "hasNextPage": has_next,
                "nextCursor": str(start + self.page_size) if has_next else None}

    def get_owned_objects(self, owner, struct_type, cursor=None):
        self.calls.append(("caps", owner, cursor))
        caps = self.caps.get(owner, [])
        if isinstance(caps, Exception):
            raise caps
        items = [{"data": {"type": struct_type, "content": {"fields": {"for": kiosk}}}} for kiosk in caps]
        return self._page(items, cursor)

    def get_dynamic_fields(self, parent_id, cursor=None):
        self.calls.append(("fields", parent_id, cursor))
        return self._page(self.fields.get(parent_id, []), cursor)

    def get_dynamic_field_object(self, parent_id, name):
        self.calls.append(("field_object", parent_id))
        return self.field_objects.get((parent_id, str(name.get("value"))), {})


def listing_field(item_id: str) -> Dict:
    return {"name": {"type": "0x2::kiosk::Listing", "value": {"id": item_id, "is_exclusive": False}},
            "objectType": "u64"}


def item_field(item_id: str) -> Dict:
    return {"name": {"type": "0x2::kiosk::Item", "value": {"id": item_id}},
            "objectType": "0x1::nft::Nft"}


def rpc_down(message: str = "node unavailable") -> UpstreamError:
    return UpstreamError(message)


class SequenceRandom:
    """Детерминированный rng: возвращает значения по кругу"""

    def __init__(self, *values: float):
        self.values = list(values)
        self.index = 0

    def random(self) -> float:
        value = self.values[self.index % len(self.values)]
        self.index += 1
        return value
