# engagement-backend/app/services/streak_service.py
"""
デイリーログインボーナス（7日サイクル）のビジネスロジック

evaluate は参照用の判定。claim は atomic_update の中で evaluate をやり直し、
受取可能な場合のみ連続日数・最終受取日・付与をまとめて反映する。
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from app.core.errors import AlreadyClaimedToday
from app.db import models
from app.db.data.reward_ladder import CYCLE_LENGTH, REWARD_LADDER, reward_for
from app.db.store import ProfileSnapshot, ProfileStore, UpdatePlan
from app.services import grant_ledger
from app.utils.time_utils import day_key, days_between, get_canonical_today

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakEvaluation:
    eligible: bool
    cycle_position: int
    projected_streak: int
    reward_amount: int


@dataclass(frozen=True)
class DailyRewardDay:
    day: int
    reward: int
    is_claimed: bool
    is_current_target: bool


@dataclass
class ClaimResult:
    evaluation: StreakEvaluation
    grant: Optional[models.GrantRecord]
    profile: ProfileSnapshot
    already_claimed: bool


def evaluate(profile: ProfileSnapshot, today: date) -> StreakEvaluation:
    """今日受け取れるか、受け取った場合の連続日数とサイクル位置を判定"""
    streak = profile.daily_streak_count
    gap = days_between(profile.last_claim_day, today)

    if gap is not None and gap <= 0:
        # 受取済み（未来日付が保存されている場合も受取済みとして扱う）
        position = ((streak - 1) % CYCLE_LENGTH) + 1 if streak > 0 else 1
        return StreakEvaluation(
            eligible=False,
            cycle_position=position,
            projected_streak=streak,
            reward_amount=reward_for(position),
        )

    if gap == 1:
        position = (streak % CYCLE_LENGTH) + 1
        return StreakEvaluation(
            eligible=True,
            cycle_position=position,
            projected_streak=streak + 1,
            reward_amount=reward_for(position),
        )

    # 初回 or 2日以上空いた: 連続記録はリセット
    return StreakEvaluation(
        eligible=True,
        cycle_position=1,
        projected_streak=1,
        reward_amount=reward_for(1),
    )


def claim(store: ProfileStore, user_id: str, today: date = None) -> ClaimResult:
    """
    デイリーボーナスを受け取る。同じ日に何度呼んでも付与は1回。
    受取済みの場合は元の付与記録を already_claimed=True で返す。
    """
    today = today or get_canonical_today()
    key = grant_ledger.streak_key(user_id, day_key(today))

    def plan(profile: ProfileSnapshot) -> UpdatePlan:
        evaluation = evaluate(profile, today)
        if not evaluation.eligible:
            raise AlreadyClaimedToday()

        updated = profile.replace(
            daily_streak_count=evaluation.projected_streak,
            last_claim_day=today,
        )
        updated, insert = grant_ledger.with_grant(updated, key, evaluation.reward_amount)
        return UpdatePlan(profile=updated, ledger_insert=insert)

    try:
        result = store.atomic_update(user_id, plan)
    except AlreadyClaimedToday:
        profile = store.read_profile(user_id)
        logger.info("daily reward already claimed: user_id=%s day=%s", user_id, today)
        return ClaimResult(
            evaluation=evaluate(profile, today),
            grant=store.get_grant(key),
            profile=profile,
            already_claimed=True,
        )

    if not result.grant_created:
        # 別リクエストが先に付与済み
        return ClaimResult(
            evaluation=evaluate(result.profile, today),
            grant=result.grant,
            profile=result.profile,
            already_claimed=True,
        )

    logger.info(
        "daily reward claimed: user_id=%s streak=%d amount=%d",
        user_id,
        result.profile.daily_streak_count,
        result.grant.amount,
    )
    position = ((result.profile.daily_streak_count - 1) % CYCLE_LENGTH) + 1
    return ClaimResult(
        evaluation=StreakEvaluation(
            eligible=True,
            cycle_position=position,
            projected_streak=result.profile.daily_streak_count,
            reward_amount=result.grant.amount,
        ),
        grant=result.grant,
        profile=result.profile,
        already_claimed=False,
    )


def build_calendar(profile: ProfileSnapshot, today: date) -> List[DailyRewardDay]:
    """チェックイン画面の7日分グリッド"""
    evaluation = evaluate(profile, today)

    if evaluation.eligible:
        # これから受け取る日より前が受取済み
        claimed_through = evaluation.cycle_position - 1
        target = evaluation.cycle_position
    else:
        claimed_through = evaluation.cycle_position
        target = None

    return [
        DailyRewardDay(
            day=entry.cycle_position,
            reward=entry.reward_amount,
            is_claimed=entry.cycle_position <= claimed_through,
            is_current_target=entry.cycle_position == target,
        )
        for entry in REWARD_LADDER
    ]
