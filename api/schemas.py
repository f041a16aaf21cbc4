"""
Модуль: Схемы запросов HTTP API
Описание: Pydantic модели тел запросов /stake, /gamble и /admin/grants
Автор: NFT Staking Rewards Team
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class StakeRequest(BaseModel):
    wallet: str = Field(..., description="Staker wallet address")
    asset_id: str = Field(..., description="Staked NFT object id")
    tier: str = Field(..., description="Voter | Governor | Council")
    duration_days: int
    duration_months: int
    referral_code: Optional[str] = None
    verification_code: Optional[str] = None


class GambleRequest(BaseModel):
    group_id: int
    wallet: str


class GrantCreateRequest(BaseModel):
    wallet: str
    tier: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
