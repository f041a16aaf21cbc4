"""
Модуль: Аутентификация HTTP API
Описание: Проверка секретов cron/stake/admin и HMAC токенов сессии кошелька
Автор: NFT Staking Rewards Team
"""

import hashlib
import hmac
from typing import Callable, Optional

from fastapi import Header

from core.errors import AuthError, ForbiddenError
from utils.logger import get_logger

logger = get_logger("ApiSecurity")


def secrets_match(presented: Optional[str], expected: Optional[str]) -> bool:
    """Сравнение за постоянное время; незаданный секрет сервера не совпадает никогда"""
    if not expected or not presented:
        return False
    return hmac.compare_digest(presented.strip().encode("utf-8"), expected.encode("utf-8"))


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Токен из заголовка Authorization: Bearer <token>"""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def sign_wallet_token(wallet: str, secret: str) -> str:
    """Токен сессии кошелька: <wallet>.<hex HMAC-SHA256(secret, wallet)>"""
    if not secret:
        raise ValueError("session_secret is not configured")
    wallet = wallet.strip().lower()
    signature = hmac.new(secret.encode("utf-8"), wallet.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"{wallet}.{signature}"


def verify_wallet_token(token: Optional[str], secret: str) -> str:
    """Кошелёк, для которого выпущен токен (иначе AuthError)"""
    if not token or not secret:
        raise AuthError("Missing or invalid session token")
    wallet, _, signature = token.rpartition(".")
    if not wallet or not signature:
        raise AuthError("Missing or invalid session token")
    expected = sign_wallet_token(wallet, secret)
    if not hmac.compare_digest(token.strip().lower().encode("utf-8"), expected.encode("utf-8")):
        raise AuthError("Missing or invalid session token")
    return wallet.lower()


class ApiAuth:
    """FastAPI зависимости аутентификации по настроенным секретам"""

    def __init__(self, settings):
        self.settings = settings

    def cycle_dependency(self) -> Callable:
        settings = self.settings

        def _dependency(
            x_cron_secret: Optional[str] = Header(default=None, alias="X-Cron-Secret"),
            authorization: Optional[str] = Header(default=None),
        ) -> None:
            if secrets_match(x_cron_secret, settings.cron_secret):
                return
            if secrets_match(bearer_token(authorization), settings.cycle_bearer_token):
                return
            logger.warning("🔐 Rejected /cycle call: bad credentials")
            raise AuthError("Unauthorized")

        return _dependency

    def stake_dependency(self) -> Callable:
        settings = self.settings

        def _dependency(
            x_stake_api_secret: Optional[str] = Header(default=None, alias="X-Stake-Api-Secret"),
        ) -> None:
            if not secrets_match(x_stake_api_secret, settings.stake_api_secret):
                raise AuthError("Unauthorized")

        return _dependency

    def admin_dependency(self) -> Callable:
        settings = self.settings

        def _dependency(
            x_admin_api_secret: Optional[str] = Header(default=None, alias="X-Admin-Api-Secret"),
        ) -> None:
            if not secrets_match(x_admin_api_secret, settings.admin_api_secret):
                raise AuthError("Unauthorized")

        return _dependency

    def wallet_dependency(self) -> Callable:
        """Кошелёк вызывающего из bearer токена сессии"""
        settings = self.settings

        def _dependency(authorization: Optional[str] = Header(default=None)) -> str:
            return verify_wallet_token(bearer_token(authorization), settings.session_secret)

        return _dependency


def ensure_same_wallet(caller_wallet: str, requested_wallet: str) -> None:
    """Кошелёк сессии должен совпадать с кошельком в запросе"""
    if caller_wallet.lower() != (requested_wallet or "").strip().lower():
        raise ForbiddenError("Wallet address does not match the session", "forbidden")
