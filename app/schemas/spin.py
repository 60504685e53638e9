from pydantic import BaseModel, ConfigDict
from typing import List
from datetime import datetime


class PrizeOut(BaseModel):
    index: int
    label: str
    value: int


class PrizeTableResponse(BaseModel):
    segment_count: int
    prizes: List[PrizeOut]


class SpinRequest(BaseModel):
    # ホイールの現在の累積回転角（演出用・抽選には使わない）
    current_rotation: float = 0.0


class SpinOutcomeOut(BaseModel):
    outcome_id: str
    winning_index: int
    reward_amount: int
    issued_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AnimationPlanOut(BaseModel):
    start_rotation: float
    final_rotation: float
    duration_seconds: float


class SpinResponse(BaseModel):
    success: bool
    outcome: SpinOutcomeOut
    animation: AnimationPlanOut
    coin_balance: int
    spins_left: int
