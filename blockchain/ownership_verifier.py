"""
NFT Staking Rewards Engine - Ownership Verifier
Проверка владения застейканным NFT через Sui ledger с учётом kiosk.

Автор: NFT Staking Rewards Team
Версия: 1.0.0
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from config.constants import KIOSK_OWNER_CAP_TYPE, KIOSK_LISTING_TYPE_MARKER, ForfeitureReason
from core.errors import UpstreamError
from utils.batch_processor import BatchProcessor, BatchResult
from utils.logger import get_logger

logger = get_logger(__name__)


class OwnershipOutcome(Enum):
    """Результат проверки владения"""
    OWNED = "owned"
    LISTED_ELSEWHERE = "listed_elsewhere"
    TRANSFERRED = "transferred"
    HELD_IN_OWNED_CONTAINER = "held_in_owned_container"
    UNKNOWN = "unknown"


class OwnershipDecision(Enum):
    """Что делать со стейком по итогам проверки"""
    ACCRUE = "accrue"
    FORFEIT = "forfeit"
    DEFER = "defer"


@dataclass
class OwnershipResult:
    """Результат проверки одного актива"""
    asset_id: str
    expected_wallet: str
    outcome: OwnershipOutcome
    listed: bool = False
    reason: str = ""

    @property
    def is_continuing(self) -> bool:
        """Owned или HeldInOwnedContainer(listed=false)"""
        if self.outcome == OwnershipOutcome.OWNED:
            return True
        return self.outcome == OwnershipOutcome.HELD_IN_OWNED_CONTAINER and not self.listed

    def forfeiture_reason(self) -> ForfeitureReason:
        """Причина потери для отрицательного результата"""
        if self.outcome == OwnershipOutcome.LISTED_ELSEWHERE:
            return ForfeitureReason.LISTED
        if self.outcome == OwnershipOutcome.HELD_IN_OWNED_CONTAINER and self.listed:
            return ForfeitureReason.LISTED
        return ForfeitureReason.TRANSFERRED


def decide(result: OwnershipResult, forfeit_on_unknown: bool = False) -> OwnershipDecision:
    """
    Политика по результату проверки.

    Unknown (сбой RPC) по умолчанию откладывается до следующего цикла;
    forfeit_on_unknown=True возвращает legacy-поведение (forfeit как transferred).
    """
    if result.is_continuing:
        return OwnershipDecision.ACCRUE
    if result.outcome == OwnershipOutcome.UNKNOWN and not forfeit_on_unknown:
        return OwnershipDecision.DEFER
    return OwnershipDecision.FORFEIT


def _normalize(address: Optional[str]) -> str:
    return (address or "").strip().lower()


class OwnershipVerifier:
    """
    Классификация владения застейканным активом.

    Функциональность:
    - Прямой владелец: свой кошелек / маркетплейс / чужой адрес
    - Kiosk: проверка KioskOwnerCap у ожидаемого кошелька и поиск Listing
    - Любой сбой RPC → Unknown
    - Пакетная проверка с ограниченным параллелизмом
    """

    def __init__(self, client, marketplace_addresses: Iterable[str] = (), max_workers: int = 8):
        """
        Args:
            client: SuiRpcClient (или совместимый объект)
            marketplace_addresses: Allow-list адресов маркетплейсов
            max_workers: Параллельных проверок в пакете
        """
        self.client = client
        self.marketplaces = {_normalize(a) for a in marketplace_addresses if a}
        self.max_workers = max_workers

    def verify(self, asset_id: str, expected_wallet: str) -> OwnershipResult:
        """Проверить владение одним активом"""
        try:
            return self._classify(asset_id, expected_wallet)
        except UpstreamError as e:
            logger.warning(f"⚠️ Ownership check failed for {asset_id}: {e}")
            return OwnershipResult(asset_id, expected_wallet, OwnershipOutcome.UNKNOWN, reason=f"rpc error: {e}")

    def _classify(self, asset_id: str, expected_wallet: str) -> OwnershipResult:
        owner = self.client.get_object_owner(asset_id)
        if not owner:
            return OwnershipResult(asset_id, expected_wallet, OwnershipOutcome.TRANSFERRED,
                                   reason="no owner found")

        if isinstance(owner, dict) and owner.get("AddressOwner"):
            current = _normalize(owner["AddressOwner"])
            if current == _normalize(expected_wallet):
                return OwnershipResult(asset_id, expected_wallet, OwnershipOutcome.OWNED)
            if current in self.marketplaces:
                return OwnershipResult(asset_id, expected_wallet, OwnershipOutcome.LISTED_ELSEWHERE,
                                       listed=True, reason="owned by marketplace")
            return OwnershipResult(asset_id, expected_wallet, OwnershipOutcome.TRANSFERRED,
                                   reason="transferred to another wallet")

        if isinstance(owner, dict) and owner.get("ObjectOwner"):
            container_id = owner["ObjectOwner"]
            if self._wallet_controls_kiosk(expected_wallet, container_id):
                listed = self._is_listed_in_kiosk(container_id, asset_id)
                return OwnershipResult(asset_id, expected_wallet, OwnershipOutcome.HELD_IN_OWNED_CONTAINER,
                                       listed=listed,
                                       reason="kiosk listing found" if listed else "held in own kiosk")
            if _normalize(container_id) in self.marketplaces:
                return OwnershipResult(asset_id, expected_wallet, OwnershipOutcome.LISTED_ELSEWHERE,
                                       listed=True, reason="marketplace kiosk")
            return OwnershipResult(asset_id, expected_wallet, OwnershipOutcome.TRANSFERRED,
                                   reason="transferred to another kiosk/contract")

        return OwnershipResult(asset_id, expected_wallet, OwnershipOutcome.TRANSFERRED,
                               reason=f"unsupported owner type: {owner}")

    def _wallet_controls_kiosk(self, wallet: str, kiosk_id: str) -> bool:
        """Есть ли у кошелька KioskOwnerCap для kiosk_id"""
        target = _normalize(kiosk_id)
        cursor = None
        while True:
            page = self.client.get_owned_objects(wallet, KIOSK_OWNER_CAP_TYPE, cursor)
            for item in page.get("data") or []:
                fields = (((item or {}).get("data") or {}).get("content") or {}).get("fields") or {}
                # KioskOwnerCap.for: обычно строка ID, иногда вложенная структура
                cap_kiosk = fields.get("for")
                if isinstance(cap_kiosk, dict):
                    inner = (cap_kiosk.get("fields") or {}).get("id")
                    cap_kiosk = inner.get("id") if isinstance(inner, dict) else (inner or cap_kiosk.get("id"))
                if _normalize(cap_kiosk) == target:
                    return True
            cursor = page.get("nextCursor")
            if not page.get("hasNextPage") or not cursor:
                return False

    def _is_listed_in_kiosk(self, kiosk_id: str, asset_id: str) -> bool:
        """Есть ли среди dynamic fields kiosk запись Listing для asset_id"""
        target = _normalize(asset_id)
        cursor = None
        while True:
            page = self.client.get_dynamic_fields(kiosk_id, cursor)
            for entry in page.get("data") or []:
                if self._listing_item_id(kiosk_id, entry) == target:
                    return True
            cursor = page.get("nextCursor")
            if not page.get("hasNextPage") or not cursor:
                return False

    def _listing_item_id(self, kiosk_id: str, entry: Dict) -> str:
        """id предмета, на который ссылается Listing-запись ("" если это не Listing)"""
        name = entry.get("name") or {}
        name_type = name.get("type") or ""
        value = name.get("value")

        # Ключ kiosk::Listing содержит id предмета прямо в name.value
        if KIOSK_LISTING_TYPE_MARKER in name_type:
            if isinstance(value, dict):
                return _normalize(value.get("id") or value.get("item_id"))
            return ""
        # Item, Lock и прочие известные ключи kiosk
        if "::kiosk::" in name_type:
            return ""

        # Нестандартный ключ: смотрим содержимое поля
        obj = self.client.get_dynamic_field_object(kiosk_id, name)
        data = (obj or {}).get("data") or {}
        object_type = data.get("type") or ""
        if "listing" not in object_type.lower():
            return ""
        fields = (data.get("content") or {}).get("fields") or {}
        item = fields.get("item")
        candidates = [fields.get("item_id"), fields.get("itemId")]
        if isinstance(item, dict):
            candidates.extend([(item.get("fields") or {}).get("id"), item.get("id")])
        for candidate in candidates:
            if isinstance(candidate, dict):
                candidate = candidate.get("id")
            if isinstance(candidate, str) and candidate:
                return _normalize(candidate)
        return ""

    def verify_many(self, items: List[Tuple[str, str]],
                    timeout: Optional[float] = None) -> Dict[Tuple[str, str], OwnershipResult]:
        """
        Пакетная проверка (asset_id, wallet) с ограниченным параллелизмом.

        Ошибка одного элемента не прерывает остальные: такой элемент
        получает Unknown.
        """
        processor = BatchProcessor(max_workers=self.max_workers, item_timeout=timeout)
        results: List[BatchResult] = processor.run(
            items,
            lambda item: self.verify(item[0], item[1]),
            key=lambda item: item,
        )

        verified: Dict[Tuple[str, str], OwnershipResult] = {}
        for batch_result in results:
            asset_id, wallet = batch_result.task_id
            if batch_result.success:
                verified[batch_result.task_id] = batch_result.result
            else:
                verified[batch_result.task_id] = OwnershipResult(
                    asset_id, wallet, OwnershipOutcome.UNKNOWN, reason=batch_result.error or "check failed"
                )
        return verified
