"""
Модуль core - Основная бизнес-логика NFT Staking Rewards Engine
"""

from .errors import (
    StakingError, ValidationError, AuthError, ForbiddenError, NotFoundError,
    ConflictError, IllegalTransitionError, UpstreamError, PersistenceError
)

__all__ = [
    'StakingError',
    'ValidationError',
    'AuthError',
    'ForbiddenError',
    'NotFoundError',
    'ConflictError',
    'IllegalTransitionError',
    'UpstreamError',
    'PersistenceError'
]
