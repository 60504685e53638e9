# app/db/data/reward_ladder.py
"""
デイリーログインボーナスの7日サイクル報酬表
"""

from typing import NamedTuple


class RewardLadderEntry(NamedTuple):
    cycle_position: int
    reward_amount: int


CYCLE_LENGTH = 7

REWARD_LADDER_DATA = [
    {"cycle_position": 1, "reward_amount": 50},
    {"cycle_position": 2, "reward_amount": 75},
    {"cycle_position": 3, "reward_amount": 100},
    {"cycle_position": 4, "reward_amount": 125},
    {"cycle_position": 5, "reward_amount": 150},
    {"cycle_position": 6, "reward_amount": 200},
    {"cycle_position": 7, "reward_amount": 500},  # 7日目はボーナス
]

REWARD_LADDER = tuple(RewardLadderEntry(**row) for row in REWARD_LADDER_DATA)


def validate_ladder(ladder) -> None:
    """報酬表の整合性チェック（不正なら ValueError）"""
    if [e.cycle_position for e in ladder] != list(range(1, CYCLE_LENGTH + 1)):
        raise ValueError(f"reward ladder must cover positions 1..{CYCLE_LENGTH} in order")
    if any(e.reward_amount <= 0 for e in ladder):
        raise ValueError("reward ladder amounts must be positive")


validate_ladder(REWARD_LADDER)


def reward_for(cycle_position: int) -> int:
    """サイクル位置 (1..7) の報酬額"""
    if not 1 <= cycle_position <= CYCLE_LENGTH:
        raise ValueError(f"cycle_position must be 1..{CYCLE_LENGTH}: {cycle_position}")
    return REWARD_LADDER[cycle_position - 1].reward_amount
