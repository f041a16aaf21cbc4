"""
NFT Staking Rewards Engine - Errors

Таксономия ошибок движка. Каждая ошибка несёт стабильный код причины
(для клиентов API) и HTTP статус.
"""

from typing import Optional


class StakingError(Exception):
    """Базовая ошибка движка"""

    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(StakingError):
    """Некорректный или выходящий за диапазон ввод"""
    status_code = 400
    default_code = "invalid_request"


class AuthError(StakingError):
    """Отсутствующие или неверные учётные данные"""
    status_code = 401
    default_code = "unauthorized"


class ForbiddenError(StakingError):
    """Вызывающий не владеет ресурсом"""
    status_code = 403
    default_code = "forbidden"


class NotFoundError(StakingError):
    status_code = 404
    default_code = "not_found"


class ConflictError(StakingError):
    """Дубликат или неподходящее состояние"""
    status_code = 409
    default_code = "conflict"


class IllegalTransitionError(ConflictError):
    """Недопустимый переход статуса"""
    default_code = "illegal_transition"


class UpstreamError(StakingError):
    """Сбой внешнего сервиса (ledger RPC, профили)"""
    status_code = 502
    default_code = "ledger_unavailable"


class PersistenceError(StakingError):
    """Сбой записи в хранилище"""
    status_code = 503
    default_code = "storage_unavailable"
