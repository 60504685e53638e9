# engagement-backend/app/api/v1/endpoints/spin.py
"""
ラッキースピン API エンドポイント
- 景品テーブル（ホイール描画用）
- スピン（抽選はサーバーのみ、結果と演出プランを返す）
- 結果の再取得（通信エラー後の確認用、再抽選しない）
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends

from app.api.v1.endpoints.users import get_current_user_id, get_store
from app.db.data.spin_prizes import SPIN_PRIZES
from app.db.store import ProfileStore
from app.schemas.spin import (
    AnimationPlanOut,
    PrizeOut,
    PrizeTableResponse,
    SpinOutcomeOut,
    SpinRequest,
    SpinResponse,
)
from app.services import spin_service, wheel_sync


router = APIRouter()


@router.get("/prizes", response_model=PrizeTableResponse)
def read_prizes():
    """景品一覧（確率は返さない）"""
    return PrizeTableResponse(
        segment_count=len(SPIN_PRIZES),
        prizes=[
            PrizeOut(index=i, label=p["label"], value=p["value"])
            for i, p in enumerate(SPIN_PRIZES)
        ],
    )


@router.post("", response_model=SpinResponse)
def play_spin(
    req: Optional[SpinRequest] = Body(default=None),
    user_id: str = Depends(get_current_user_id),
    store: ProfileStore = Depends(get_store),
):
    """スピンを1回消費して抽選する。報酬はレスポンス時点で確定・付与済み"""
    req = req or SpinRequest()
    outcome = spin_service.resolve_spin(store, user_id)
    profile = store.read_profile(user_id)

    plan = wheel_sync.plan_spin_animation(
        outcome.winning_index,
        len(SPIN_PRIZES),
        current_rotation=req.current_rotation,
    )

    return SpinResponse(
        success=True,
        outcome=SpinOutcomeOut.model_validate(outcome),
        animation=AnimationPlanOut(
            start_rotation=plan.start_rotation,
            final_rotation=plan.final_rotation,
            duration_seconds=plan.duration_seconds,
        ),
        coin_balance=profile.coin_balance,
        spins_left=profile.spins_remaining,
    )


@router.get("/outcomes/{outcome_id}", response_model=SpinOutcomeOut)
def read_outcome(
    outcome_id: str,
    user_id: str = Depends(get_current_user_id),
    store: ProfileStore = Depends(get_store),
):
    """保存済みのスピン結果を返す"""
    return SpinOutcomeOut.model_validate(spin_service.get_outcome(store, user_id, outcome_id))
