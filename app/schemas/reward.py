from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import datetime


class GrantOut(BaseModel):
    idempotency_key: str
    kind: str
    amount: int
    applied_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LadderEntryOut(BaseModel):
    cycle_position: int
    reward_amount: int


class DailyRewardDayOut(BaseModel):
    day: int
    reward: int
    is_claimed: bool
    is_current_target: bool


class DailyStatusResponse(BaseModel):
    eligible: bool
    cycle_position: int
    projected_streak: int
    reward_amount: int
    current_streak: int
    calendar: List[DailyRewardDayOut]
    next_claim_at: str  # ISO8601文字列


class DailyClaimResponse(BaseModel):
    success: bool
    already_claimed: bool
    reward: int
    new_streak: int
    cycle_position: int
    coin_balance: int
    grant: Optional[GrantOut] = None
    message: Optional[str] = None


class AdRewardRequest(BaseModel):
    ad_session_id: str
    purpose: str  # 'spin' | 'double'
    outcome_id: Optional[str] = None


class AdRewardResponse(BaseModel):
    granted: bool  # False なら既に付与済み（再送）
    purpose: str
    coin_balance: int
    spins_remaining: int
    grant: GrantOut
