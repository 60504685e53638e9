# engagement-backend/app/services/spin_service.py
"""
ラッキースピンの抽選

抽選はサーバー側でのみ行い、クライアントから乱数や結果を受け取ることはない。
回数チェックと消費・結果の保存・コイン付与はひとつの atomic_update で行う。
"""

import logging
import random
import uuid
from datetime import date, datetime
from typing import Optional, Sequence

from app.core.config import settings
from app.core.errors import NoSpinsAvailable, OutcomeNotFound
from app.db import models
from app.db.data.spin_prizes import SPIN_PRIZES, SPIN_WEIGHTS
from app.db.store import OutcomeInsert, ProfileSnapshot, ProfileStore, UpdatePlan
from app.services import grant_ledger
from app.utils.time_utils import calendar_day, get_canonical_now

logger = logging.getLogger(__name__)


def pick_index(weights: Sequence[float], r: float) -> int:
    """
    累積重みが r を超える最初のインデックスを返す (0 <= r < 1)。
    重み0のエントリは選ばれない。
    """
    cumulative = 0.0
    last_positive = None
    for index, weight in enumerate(weights):
        if weight <= 0:
            continue
        cumulative += weight
        last_positive = index
        if r < cumulative:
            return index

    if last_positive is None:
        raise ValueError("prize table has no positive weight")
    # 合計が浮動小数点誤差で 1.0 をわずかに下回る場合
    return last_positive


def apply_daily_reset(profile: ProfileSnapshot, today: date) -> ProfileSnapshot:
    """日付が変わっていれば1日分のスピン回数に戻す"""
    if profile.spins_reset_day is None or profile.spins_reset_day < today:
        return profile.replace(
            spins_remaining=settings.SPINS_PER_DAY,
            spins_reset_day=today,
        )
    return profile


def resolve_spin(
    store: ProfileStore,
    user_id: str,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> models.SpinOutcome:
    """スピンを1回消費して抽選し、保存済みの結果を返す"""
    rng = rng or random
    now = now or get_canonical_now()
    today = calendar_day(now)

    def plan(profile: ProfileSnapshot) -> UpdatePlan:
        profile = apply_daily_reset(profile, today)
        if profile.spins_remaining <= 0:
            raise NoSpinsAvailable()

        index = pick_index(SPIN_WEIGHTS, rng.random())
        amount = SPIN_PRIZES[index]["value"]
        outcome_id = uuid.uuid4().hex

        updated = profile.replace(spins_remaining=profile.spins_remaining - 1)
        updated, insert = grant_ledger.with_grant(
            updated, grant_ledger.spin_key(outcome_id), amount
        )
        return UpdatePlan(
            profile=updated,
            ledger_insert=insert,
            outcome_insert=OutcomeInsert(
                outcome_id=outcome_id,
                winning_index=index,
                reward_amount=amount,
                issued_at=now,
            ),
        )

    result = store.atomic_update(user_id, plan)
    outcome = result.outcome
    logger.info(
        "spin resolved: user_id=%s outcome_id=%s index=%d amount=%d spins_left=%d",
        user_id,
        outcome.outcome_id,
        outcome.winning_index,
        outcome.reward_amount,
        result.profile.spins_remaining,
    )
    return outcome


def get_outcome(store: ProfileStore, user_id: str, outcome_id: str) -> models.SpinOutcome:
    """保存済みの結果を返す（再抽選はしない）"""
    outcome = store.get_outcome(outcome_id)
    if outcome is None or outcome.user_id != user_id:
        raise OutcomeNotFound()
    return outcome


def current_spins(profile: ProfileSnapshot, today: date) -> int:
    """表示用: 日付リセットを考慮した残り回数"""
    return apply_daily_reset(profile, today).spins_remaining


def grant_ad_spin(
    store: ProfileStore, user_id: str, ad_session_id: str, today: Optional[date] = None
) -> grant_ledger.GrantResult:
    """
    リワード広告の視聴完了でスピンを1回追加する。
    先に日付リセットを反映してから加算するので、翌日のリセットで消えることはない。
    """
    today = today or calendar_day(get_canonical_now())
    return grant_ledger.grant(
        store,
        user_id,
        grant_ledger.ad_spin_key(ad_session_id),
        1,
        kind=grant_ledger.KIND_SPINS,
        prepare=lambda profile: apply_daily_reset(profile, today),
    )
