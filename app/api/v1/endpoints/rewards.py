# engagement-backend/app/api/v1/endpoints/rewards.py
"""
デイリーログインボーナス・広告報酬 API エンドポイント
- 受取状況と7日カレンダー
- デイリーボーナスを受け取る（同日の再送は元の付与を返す）
- リワード広告の報酬（スピン追加 / スピン結果2倍）
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.v1.endpoints.users import get_current_user_id, get_store
from app.db.data.reward_ladder import REWARD_LADDER
from app.db.store import ProfileStore
from app.schemas.reward import (
    AdRewardRequest,
    AdRewardResponse,
    DailyClaimResponse,
    DailyRewardDayOut,
    DailyStatusResponse,
    GrantOut,
    LadderEntryOut,
)
from app.services import grant_ledger, spin_service, streak_service
from app.services.ad_session import AdRewardBridge
from app.utils.time_utils import get_canonical_today, next_day_start


router = APIRouter()


@router.get("/ladder", response_model=List[LadderEntryOut])
def read_reward_ladder():
    """7日サイクルの報酬表"""
    return [
        LadderEntryOut(cycle_position=e.cycle_position, reward_amount=e.reward_amount)
        for e in REWARD_LADDER
    ]


@router.get("/daily", response_model=DailyStatusResponse)
def read_daily_status(
    user_id: str = Depends(get_current_user_id),
    store: ProfileStore = Depends(get_store),
):
    """今日受け取れるかどうかとカレンダー表示用データ"""
    today = get_canonical_today()
    profile = store.read_profile(user_id)
    evaluation = streak_service.evaluate(profile, today)
    calendar = streak_service.build_calendar(profile, today)

    return DailyStatusResponse(
        eligible=evaluation.eligible,
        cycle_position=evaluation.cycle_position,
        projected_streak=evaluation.projected_streak,
        reward_amount=evaluation.reward_amount,
        current_streak=profile.daily_streak_count,
        calendar=[DailyRewardDayOut(**vars(day)) for day in calendar],
        next_claim_at=next_day_start().isoformat(),
    )


@router.post("/daily/claim", response_model=DailyClaimResponse)
def claim_daily_reward(
    user_id: str = Depends(get_current_user_id),
    store: ProfileStore = Depends(get_store),
):
    """デイリーボーナスを受け取る (1日1回)"""
    result = streak_service.claim(store, user_id)

    if result.already_claimed:
        return DailyClaimResponse(
            success=False,
            already_claimed=True,
            reward=result.grant.amount if result.grant else 0,
            new_streak=result.profile.daily_streak_count,
            cycle_position=result.evaluation.cycle_position,
            coin_balance=result.profile.coin_balance,
            grant=GrantOut.model_validate(result.grant) if result.grant else None,
            message="Already claimed today!",
        )

    return DailyClaimResponse(
        success=True,
        already_claimed=False,
        reward=result.grant.amount,
        new_streak=result.profile.daily_streak_count,
        cycle_position=result.evaluation.cycle_position,
        coin_balance=result.profile.coin_balance,
        grant=GrantOut.model_validate(result.grant),
        message=f"🎁 デイリーボーナス +{result.grant.amount}コイン獲得！",
    )


@router.post("/ads/reward", response_model=AdRewardResponse)
def claim_ad_reward(
    req: AdRewardRequest,
    user_id: str = Depends(get_current_user_id),
    store: ProfileStore = Depends(get_store),
):
    """
    リワード広告の視聴完了で呼ばれる。ad_session_id / outcome_id 単位で1回だけ付与。
    - purpose=spin: スピンを1回追加
    - purpose=double: スピン結果の報酬をもう一度付与（2倍）
    """
    if req.purpose == AdRewardBridge.PURPOSE_SPIN:
        result = spin_service.grant_ad_spin(store, user_id, req.ad_session_id)
    elif req.purpose == AdRewardBridge.PURPOSE_DOUBLE:
        if not req.outcome_id:
            raise HTTPException(status_code=400, detail="outcome_id が必要です")
        result = grant_ledger.double_outcome(store, user_id, req.outcome_id)
    else:
        raise HTTPException(status_code=400, detail=f"不明な purpose です: {req.purpose}")

    return AdRewardResponse(
        granted=result.created,
        purpose=req.purpose,
        coin_balance=result.profile.coin_balance,
        spins_remaining=result.profile.spins_remaining,
        grant=GrantOut.model_validate(result.record),
    )


@router.get("/grants", response_model=List[GrantOut])
def read_recent_grants(
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    store: ProfileStore = Depends(get_store),
):
    """最近の付与履歴"""
    return [GrantOut.model_validate(g) for g in grant_ledger.list_grants(store, user_id, limit)]
