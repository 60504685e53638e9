# engagement-backend/app/services/grant_ledger.py
"""
付与台帳（コイン・スピン回数の付与はすべてここを通す）

同じ冪等キーでの付与は何度呼んでも1回だけ反映され、2回目以降は元の記録を返す。
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from app.core.errors import (
    DuplicateGrantIgnored,
    GrantNotFound,
    InvalidGrant,
    OutcomeNotFound,
)
from app.db import models
from app.db.store import LedgerInsert, ProfileSnapshot, ProfileStore, UpdatePlan

logger = logging.getLogger(__name__)

KIND_COINS = "coins"
KIND_SPINS = "spins"
GRANT_KINDS = (KIND_COINS, KIND_SPINS)


@dataclass
class GrantResult:
    record: models.GrantRecord
    created: bool
    profile: ProfileSnapshot


# -----------------------------------------------------------------------------
# 冪等キー
# -----------------------------------------------------------------------------

def streak_key(user_id: str, day_key: str) -> str:
    return f"streak:{user_id}:{day_key}"


def spin_key(outcome_id: str) -> str:
    return f"spin:{outcome_id}"


def double_key(outcome_id: str) -> str:
    return f"{outcome_id}:double"


def ad_spin_key(ad_session_id: str) -> str:
    return f"ad:{ad_session_id}:spin"


# -----------------------------------------------------------------------------
# 付与
# -----------------------------------------------------------------------------

def with_grant(
    profile: ProfileSnapshot, idempotency_key: str, amount: int, kind: str = KIND_COINS
) -> Tuple[ProfileSnapshot, LedgerInsert]:
    """台帳への追加と、それに対応する残高変化をセットで作る"""
    if kind not in GRANT_KINDS:
        raise InvalidGrant(f"unknown grant kind: {kind}")
    if amount <= 0:
        raise InvalidGrant()

    if kind == KIND_COINS:
        updated = profile.replace(coin_balance=profile.coin_balance + amount)
    else:
        updated = profile.replace(spins_remaining=profile.spins_remaining + amount)
    return updated, LedgerInsert(idempotency_key=idempotency_key, amount=amount, kind=kind)


def grant(
    store: ProfileStore,
    user_id: str,
    idempotency_key: str,
    amount: int,
    kind: str = KIND_COINS,
    prepare: Optional[Callable[[ProfileSnapshot], ProfileSnapshot]] = None,
) -> GrantResult:
    """
    冪等キー付きで付与する。既に記録があれば残高を変えずにその記録を返す。
    prepare は付与前にプロフィールを整える関数（日付リセットなど）。
    """

    def plan(profile: ProfileSnapshot) -> UpdatePlan:
        if prepare is not None:
            profile = prepare(profile)
        updated, insert = with_grant(profile, idempotency_key, amount, kind)
        return UpdatePlan(profile=updated, ledger_insert=insert)

    result = store.atomic_update(user_id, plan)
    return _to_grant_result(result)


def double_outcome(store: ProfileStore, user_id: str, outcome_id: str) -> GrantResult:
    """
    スピン結果の「2倍」ボーナス。元の結果IDを冪等キーに使うため、
    タイムアウト後の再送でも1回しか付与されない。
    元の付与がない結果には使えない（暗黙に元の付与を行うことはしない）。
    """
    outcome = store.get_outcome(outcome_id)
    if outcome is None or outcome.user_id != user_id:
        raise OutcomeNotFound()

    base = store.get_grant(spin_key(outcome_id))
    if base is None or base.user_id != user_id:
        raise GrantNotFound("元のスピン報酬が付与されていません")

    return grant(store, user_id, double_key(outcome_id), outcome.reward_amount)


def get_grant(store: ProfileStore, idempotency_key: str) -> Optional[models.GrantRecord]:
    return store.get_grant(idempotency_key)


def list_grants(store: ProfileStore, user_id: str, limit: int = 20) -> List[models.GrantRecord]:
    return store.list_grants(user_id, limit=limit)


def _to_grant_result(result) -> GrantResult:
    if not result.grant_created:
        # エラーではない: 成功扱いの no-op として記録する
        logger.info("%s", DuplicateGrantIgnored(result.grant.idempotency_key))
    else:
        logger.info(
            "grant applied: key=%s user_id=%s kind=%s amount=%d",
            result.grant.idempotency_key,
            result.grant.user_id,
            result.grant.kind,
            result.grant.amount,
        )
    return GrantResult(record=result.grant, created=result.grant_created, profile=result.profile)
