"""
Модуль: Настройки для NFT Staking Rewards Engine
Описание: Pydantic класс для настроек с валидацией и загрузкой из .env
Зависимости: pydantic, pydantic-settings, python-dotenv
Автор: NFT Staking Rewards Team
"""

import json
from typing import Annotated, List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .constants import SUI_RPC_URL


class StakingEngineSettings(BaseSettings):
    """Настройки движка наград с валидацией"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # База данных
    database_url: str = Field(default="sqlite:///staking_rewards.db", description="URL базы данных")
    debug_sql: bool = Field(default=False, description="Включить отладку SQL запросов")

    # Sui ledger
    sui_rpc_url: str = Field(default=SUI_RPC_URL, description="Sui JSON-RPC endpoint")
    marketplace_addresses: Annotated[List[str], NoDecode] = Field(
        default_factory=list, description="Адреса известных маркетплейсов"
    )
    rpc_timeout_seconds: float = Field(default=10.0, description="Таймаут одного RPC вызова")
    ownership_check_workers: int = Field(default=8, description="Параллельных проверок владения")
    retry_attempts: int = Field(default=3, description="Количество повторных попыток RPC")
    retry_delay_base: float = Field(default=0.5, description="Базовая задержка retry в секундах")
    forfeit_on_unknown_ownership: bool = Field(
        default=False,
        description="Legacy: сбой RPC трактуется как transferred"
    )

    # Секреты HTTP API
    cron_secret: str = Field(default="", description="X-Cron-Secret для /cycle")
    cycle_bearer_token: str = Field(default="", description="Bearer токен для /cycle")
    stake_api_secret: str = Field(default="", description="X-Stake-Api-Secret для /stake")
    admin_api_secret: str = Field(default="", description="X-Admin-Api-Secret для /admin")
    session_secret: str = Field(default="", description="HMAC ключ для wallet session токенов")

    # HTTP сервер
    api_host: str = Field(default="0.0.0.0", description="Адрес HTTP сервера")
    api_port: int = Field(default=8080, description="Порт HTTP сервера")

    # Логирование
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO", description="Уровень логирования")
    log_file: str = Field(default="logs/staking_rewards.log", description="Файл для логов")

    @field_validator("sui_rpc_url")
    @classmethod
    def validate_rpc_url(cls, v):
        """Валидация URL endpoint"""
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError(f"Неверный формат URL: {v}")
        return v

    @field_validator("marketplace_addresses", mode="before")
    @classmethod
    def split_marketplaces(cls, v):
        """MARKETPLACE_ADDRESSES: JSON массив или строка через запятую"""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return v.split(",")
        return v

    @field_validator("marketplace_addresses")
    @classmethod
    def normalize_marketplaces(cls, v):
        """Адреса маркетплейсов в нижнем регистре"""
        return [address.strip().lower() for address in v if address.strip()]

    @field_validator("rpc_timeout_seconds", "retry_delay_base")
    @classmethod
    def validate_positive_float(cls, v):
        """Проверка положительных чисел"""
        if v <= 0:
            raise ValueError(f"Значение должно быть больше 0: {v}")
        return v

    @field_validator("ownership_check_workers", "retry_attempts")
    @classmethod
    def validate_positive_int(cls, v):
        """Проверка положительных целых"""
        if v < 1:
            raise ValueError(f"Значение должно быть не меньше 1: {v}")
        return v

    def ownership_item_timeout(self) -> float:
        """Бюджет времени на проверку одного актива (до трёх RPC вызовов с retry)"""
        return self.rpc_timeout_seconds * self.retry_attempts * 3


def get_settings(env_file: Optional[str] = None) -> StakingEngineSettings:
    """Загрузить настройки из окружения (и .env)"""
    if env_file:
        return StakingEngineSettings(_env_file=env_file)
    return StakingEngineSettings()


def create_test_settings(**overrides) -> StakingEngineSettings:
    """Создать настройки для тестирования с переопределениями"""
    test_data = {
        "database_url": "sqlite:///:memory:",
        "log_level": "DEBUG",
        "log_file": "logs/test_staking_rewards.log",
        "cron_secret": "test-cron-secret",
        "cycle_bearer_token": "test-cycle-token",
        "stake_api_secret": "test-stake-secret",
        "admin_api_secret": "test-admin-secret",
        "session_secret": "test-session-secret",
        **overrides
    }
    return StakingEngineSettings(_env_file=None, **test_data)
