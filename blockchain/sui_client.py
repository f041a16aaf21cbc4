"""
Модуль: Sui JSON-RPC клиент
Описание: Запросы владения объектами, KioskOwnerCap и dynamic fields, учёт использования API
Зависимости: requests, tenacity
Автор: NFT Staking Rewards Team
"""

import threading
import time
from typing import Any, Dict, List, Optional

import requests

from config.constants import SUI_RPC_URL, RPC_PAGE_LIMIT
from core.errors import UpstreamError
from utils.logger import get_logger
from utils.retry import api_call_retry, RetryableError, RetryCounter, classify_http_status, retry_counter

logger = get_logger("SuiRpcClient")


class APIUsageTracker:
    """Трекер использования RPC: запросы и ошибки по методам"""

    def __init__(self):
        self.requests_by_method: Dict[str, int] = {}
        self.failures_by_method: Dict[str, int] = {}
        self.start_time = time.time()
        self.last_request_time = 0.0
        self._lock = threading.Lock()

    def record_request(self, method: str, response_time: float):
        """Записать успешный запрос"""
        with self._lock:
            self.requests_by_method[method] = self.requests_by_method.get(method, 0) + 1
            self.last_request_time = time.time()
        logger.debug(f"📡 RPC: {method} | Time: {response_time:.3f}s")

    def record_failure(self, method: str):
        """Записать неуспешный запрос"""
        with self._lock:
            self.failures_by_method[method] = self.failures_by_method.get(method, 0) + 1

    def get_usage_stats(self) -> Dict:
        """Получить статистику использования"""
        with self._lock:
            total = sum(self.requests_by_method.values())
            failures = sum(self.failures_by_method.values())
            return {
                "requests_count": total,
                "failures_count": failures,
                "by_method": dict(self.requests_by_method),
                "failures_by_method": dict(self.failures_by_method),
                "uptime_hours": (time.time() - self.start_time) / 3600,
            }


class SuiRpcClient:
    """
    Read-only клиент Sui fullnode.

    Каждый вызов ограничен таймаутом; временные ошибки повторяются
    (tenacity), всё остальное поднимается как UpstreamError.
    """

    def __init__(self,
                 rpc_url: str = SUI_RPC_URL,
                 timeout: float = 10.0,
                 max_attempts: int = 3,
                 retry_delay_base: float = 0.5,
                 session: Optional[requests.Session] = None,
                 counter: Optional[RetryCounter] = None):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay_base = retry_delay_base
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})
        self.usage = APIUsageTracker()
        self.counter = counter or retry_counter
        self._request_id = 0
        self._id_lock = threading.Lock()

        logger.info(f"🔗 SuiRpcClient: {rpc_url} (timeout={timeout}s, attempts={max_attempts})")

    def _next_id(self) -> int:
        with self._id_lock:
            self._request_id += 1
            return self._request_id

    def _post(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": self._next_id(), "method": method, "params": params}
        started = time.time()
        try:
            response = self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise RetryableError(f"RPC {method} timeout: {e}", "timeout")
        except requests.ConnectionError as e:
            raise RetryableError(f"RPC {method} connection error: {e}", "connection")

        if response.status_code != 200:
            error_type = classify_http_status(response.status_code)
            message = f"RPC {method} failed: HTTP {response.status_code}"
            if error_type:
                raise RetryableError(message, error_type)
            raise UpstreamError(message)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"RPC {method} returned invalid JSON: {e}")

        if data.get("error"):
            raise UpstreamError(f"RPC {method} error: {data['error'].get('message', data['error'])}")

        self.usage.record_request(method, time.time() - started)
        return data.get("result")

    def call(self, method: str, params: List[Any]) -> Any:
        """JSON-RPC вызов с retry; любая неудача → UpstreamError"""
        retrying_post = api_call_retry(
            max_attempts=self.max_attempts,
            base_delay=self.retry_delay_base,
            counter=self.counter,
        )(self._post)
        try:
            return retrying_post(method, params)
        except RetryableError as e:
            self.usage.record_failure(method)
            raise UpstreamError(str(e)) from e
        except UpstreamError:
            self.usage.record_failure(method)
            raise

    # --- Запросы ledger ---

    def get_object_owner(self, object_id: str) -> Optional[Dict]:
        """Owner объекта: {'AddressOwner': ...} / {'ObjectOwner': ...} / None"""
        result = self.call('sui_getObject', [object_id, {"showOwner": True}])
        return ((result or {}).get("data") or {}).get("owner")

    def get_owned_objects(self, owner: str, struct_type: str,
                          cursor: Optional[str] = None) -> Dict:
        """Страница объектов типа struct_type, принадлежащих owner"""
        query = {
            "filter": {"StructType": struct_type},
            "options": {"showType": True, "showContent": True},
        }
        return self.call('suix_getOwnedObjects', [owner, query, cursor, RPC_PAGE_LIMIT]) or {}

    def get_dynamic_fields(self, parent_id: str, cursor: Optional[str] = None) -> Dict:
        """Страница dynamic fields объекта"""
        return self.call('suix_getDynamicFields', [parent_id, cursor, RPC_PAGE_LIMIT]) or {}

    def get_dynamic_field_object(self, parent_id: str, name: Dict) -> Dict:
        """Содержимое одного dynamic field"""
        return self.call('suix_getDynamicFieldObject', [parent_id, name]) or {}

    def get_usage_stats(self) -> Dict:
        return self.usage.get_usage_stats()

    def close(self):
        self.session.close()
