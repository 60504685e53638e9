from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import date


class UserCreate(BaseModel):
    """
    新規登録時に受け取るスキーマ
    """

    user_id: str
    username: Optional[str] = None


class ProfileBase(BaseModel):
    """
    APIでプロフィールを返すときの基本スキーマ（表示用・値はすべてサーバー確定値）
    """

    user_id: str
    username: Optional[str] = None
    coin_balance: int
    daily_streak_count: int
    last_claim_day: Optional[date] = None
    spins_remaining: int
    spins_reset_day: date

    model_config = ConfigDict(from_attributes=True)


class LeaderboardItem(BaseModel):
    user_id: str
    username: Optional[str] = None
    coins: int
    rank: int


class LeaderboardResponse(BaseModel):
    leaderboard: list[LeaderboardItem]
    user_rank: Optional[int] = None
