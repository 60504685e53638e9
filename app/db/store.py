# engagement-backend/app/db/store.py
"""
プロフィール・付与台帳・スピン結果の永続化

プロフィールの更新は atomic_update のみ。渡された関数が新しいプロフィールと
台帳への追加分を返し、ひとつのトランザクションでまとめて反映する（全か無か）。
"""

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import (
    GrantKeyConflict,
    InvalidGrant,
    ProfileNotFound,
    TransientNetworkFailure,
)
from app.db import models
from app.utils.time_utils import get_canonical_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileSnapshot:
    user_id: str
    coin_balance: int
    daily_streak_count: int
    last_claim_day: Optional[date]
    spins_remaining: int
    spins_reset_day: date
    username: Optional[str] = None

    @classmethod
    def from_model(cls, profile: models.Profile) -> "ProfileSnapshot":
        return cls(
            user_id=profile.user_id,
            coin_balance=profile.coin_balance,
            daily_streak_count=profile.daily_streak_count,
            last_claim_day=profile.last_claim_day,
            spins_remaining=profile.spins_remaining,
            spins_reset_day=profile.spins_reset_day,
            username=profile.username,
        )

    def replace(self, **changes) -> "ProfileSnapshot":
        return replace(self, **changes)


@dataclass(frozen=True)
class LedgerInsert:
    idempotency_key: str
    amount: int
    kind: str = "coins"  # 'coins' | 'spins'


@dataclass(frozen=True)
class OutcomeInsert:
    outcome_id: str
    winning_index: int
    reward_amount: int
    issued_at: datetime


@dataclass(frozen=True)
class UpdatePlan:
    profile: ProfileSnapshot
    ledger_insert: Optional[LedgerInsert] = None
    outcome_insert: Optional[OutcomeInsert] = None


@dataclass
class UpdateResult:
    profile: ProfileSnapshot
    grant: Optional[models.GrantRecord] = None
    grant_created: bool = False
    outcome: Optional[models.SpinOutcome] = None


class ProfileStore:
    """SQLAlchemy セッション上のストレージ"""

    def __init__(self, db: Session, max_retries: int = None):
        self.db = db
        self.max_retries = max_retries if max_retries is not None else settings.STORE_MAX_RETRIES

    # ------------------------------------------------------------------
    # 参照
    # ------------------------------------------------------------------

    def read_profile(self, user_id: str) -> ProfileSnapshot:
        return ProfileSnapshot.from_model(self._get_profile(user_id))

    def get_grant(self, idempotency_key: str) -> Optional[models.GrantRecord]:
        return (
            self.db.query(models.GrantRecord)
            .filter(models.GrantRecord.idempotency_key == idempotency_key)
            .first()
        )

    def list_grants(self, user_id: str, limit: int = 20) -> List[models.GrantRecord]:
        return (
            self.db.query(models.GrantRecord)
            .filter(models.GrantRecord.user_id == user_id)
            .order_by(models.GrantRecord.id.desc())
            .limit(limit)
            .all()
        )

    def get_outcome(self, outcome_id: str) -> Optional[models.SpinOutcome]:
        return (
            self.db.query(models.SpinOutcome)
            .filter(models.SpinOutcome.outcome_id == outcome_id)
            .first()
        )

    def top_profiles(self, limit: int) -> List[models.Profile]:
        return (
            self.db.query(models.Profile)
            .order_by(models.Profile.coin_balance.desc(), models.Profile.id.asc())
            .limit(limit)
            .all()
        )

    def count_richer_than(self, coin_balance: int) -> int:
        return (
            self.db.query(models.Profile)
            .filter(models.Profile.coin_balance > coin_balance)
            .count()
        )

    # ------------------------------------------------------------------
    # 作成
    # ------------------------------------------------------------------

    def create_profile(
        self,
        user_id: str,
        today: date,
        username: Optional[str] = None,
        coin_balance: int = None,
        spins_remaining: int = None,
    ) -> tuple[ProfileSnapshot, bool]:
        """プロフィールを作成する。既に存在する場合はそのまま返す"""
        existing = self._find_profile(user_id)
        if existing:
            return ProfileSnapshot.from_model(existing), False

        profile = models.Profile(
            user_id=user_id,
            username=username,
            coin_balance=settings.INITIAL_COINS if coin_balance is None else coin_balance,
            daily_streak_count=0,
            last_claim_day=None,
            spins_remaining=settings.INITIAL_SPINS if spins_remaining is None else spins_remaining,
            spins_reset_day=today,
        )
        self.db.add(profile)
        try:
            self.db.commit()
        except IntegrityError:
            # 同時登録: 先に入った方を返す
            self.db.rollback()
            return ProfileSnapshot.from_model(self._get_profile(user_id)), False

        self.db.refresh(profile)
        logger.info("profile created: user_id=%s", user_id)
        return ProfileSnapshot.from_model(profile), True

    # ------------------------------------------------------------------
    # 更新
    # ------------------------------------------------------------------

    def atomic_update(
        self, user_id: str, fn: Callable[[ProfileSnapshot], UpdatePlan]
    ) -> UpdateResult:
        """
        fn に現在のプロフィールを渡し、返ってきた UpdatePlan をまとめて反映する。

        - 台帳キーが既に存在する場合は何も変更せず、既存の記録を返す
        - 楽観ロック衝突時は fn を再評価して再試行する
        - 再試行しきれない場合は TransientNetworkFailure
        """
        attempts = 0
        while True:
            attempts += 1
            try:
                return self._apply_once(user_id, fn)
            except IntegrityError:
                # 同じ冪等キーが並行して書き込まれた
                self.db.rollback()
                existing = self._existing_grant_after_conflict(user_id, fn)
                if existing is not None:
                    return existing
                raise
            except (StaleDataError, OperationalError) as e:
                self.db.rollback()
                if attempts > self.max_retries:
                    logger.warning(
                        "atomic_update gave up: user_id=%s attempts=%d error=%s",
                        user_id,
                        attempts,
                        e,
                    )
                    raise TransientNetworkFailure() from e
                logger.info(
                    "atomic_update retry: user_id=%s attempt=%d error=%s",
                    user_id,
                    attempts,
                    type(e).__name__,
                )
            except Exception:
                self.db.rollback()
                raise

    def _apply_once(self, user_id, fn) -> UpdateResult:
        row = self._get_profile(user_id, for_update=True)
        current = ProfileSnapshot.from_model(row)
        plan = fn(current)

        if plan.ledger_insert is not None:
            existing = self.get_grant(plan.ledger_insert.idempotency_key)
            if existing is not None:
                # 冪等: 何も書き込まずに元の記録を返す
                self.db.rollback()
                return UpdateResult(
                    profile=self.read_profile(user_id),
                    grant=self._owned_grant(existing, user_id),
                    grant_created=False,
                )

        self._check_plan(current, plan)

        new = plan.profile
        row.coin_balance = new.coin_balance
        row.daily_streak_count = new.daily_streak_count
        row.last_claim_day = new.last_claim_day
        row.spins_remaining = new.spins_remaining
        row.spins_reset_day = new.spins_reset_day

        now = get_canonical_now()
        grant = None
        if plan.ledger_insert is not None:
            grant = models.GrantRecord(
                idempotency_key=plan.ledger_insert.idempotency_key,
                user_id=user_id,
                kind=plan.ledger_insert.kind,
                amount=plan.ledger_insert.amount,
                applied_at=now,
            )
            self.db.add(grant)

        outcome = None
        if plan.outcome_insert is not None:
            outcome = models.SpinOutcome(
                outcome_id=plan.outcome_insert.outcome_id,
                user_id=user_id,
                winning_index=plan.outcome_insert.winning_index,
                reward_amount=plan.outcome_insert.reward_amount,
                issued_at=plan.outcome_insert.issued_at,
            )
            self.db.add(outcome)

        self.db.commit()
        self.db.refresh(row)
        return UpdateResult(
            profile=ProfileSnapshot.from_model(row),
            grant=grant,
            grant_created=grant is not None,
            outcome=outcome,
        )

    @staticmethod
    def _check_plan(current: ProfileSnapshot, plan: UpdatePlan) -> None:
        """コイン残高の変化は台帳への追加分と一致しなければならない"""
        new = plan.profile
        if new.user_id != current.user_id:
            raise ValueError("plan must not change user_id")

        credited = 0
        if plan.ledger_insert is not None:
            if plan.ledger_insert.amount <= 0:
                raise InvalidGrant()
            if plan.ledger_insert.kind == "coins":
                credited = plan.ledger_insert.amount

        if new.coin_balance - current.coin_balance != credited:
            raise ValueError("coin_balance may only change through a ledger insert")
        if new.coin_balance < 0 or new.spins_remaining < 0 or new.daily_streak_count < 0:
            raise ValueError("profile counters must stay non-negative")

    def _existing_grant_after_conflict(self, user_id, fn) -> Optional[UpdateResult]:
        current = self.read_profile(user_id)
        plan = fn(current)
        if plan.ledger_insert is None:
            return None
        existing = self.get_grant(plan.ledger_insert.idempotency_key)
        if existing is None:
            return None
        return UpdateResult(
            profile=current, grant=self._owned_grant(existing, user_id), grant_created=False
        )

    @staticmethod
    def _owned_grant(grant: models.GrantRecord, user_id: str) -> models.GrantRecord:
        """既存の付与記録は本人のものだけ返す"""
        if grant.user_id != user_id:
            logger.warning(
                "grant key owned by another user: key=%s user_id=%s",
                grant.idempotency_key,
                user_id,
            )
            raise GrantKeyConflict()
        return grant

    # ------------------------------------------------------------------

    def _find_profile(self, user_id: str, for_update: bool = False) -> Optional[models.Profile]:
        query = self.db.query(models.Profile).filter(models.Profile.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def _get_profile(self, user_id: str, for_update: bool = False) -> models.Profile:
        profile = self._find_profile(user_id, for_update=for_update)
        if profile is None:
            raise ProfileNotFound()
        return profile
