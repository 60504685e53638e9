# engagement-backend/app/api/v1/endpoints/users.py

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Response,
    status,
    Header,
)
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.database import get_db
from app.db.store import ProfileSnapshot, ProfileStore
from app.schemas import user as user_schema
from app.services import spin_service
from app.utils.time_utils import get_canonical_today

router = APIRouter()


def get_store(db: Session = Depends(get_db)) -> ProfileStore:
    """リクエスト単位のストレージ"""
    return ProfileStore(db)


def get_current_user_id(
    # 認証は前段で済んでいる前提。"X-User-Id" ヘッダーでIDを受け取る
    x_user_id: str | None = Header(default=None),
) -> str:
    """
    リクエストヘッダーから現在のユーザーIDを取得する。
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="認証情報(X-User-Id)が不足しています",
        )
    return x_user_id


def to_profile_out(profile: ProfileSnapshot) -> user_schema.ProfileBase:
    """表示用: スピン回数は日付リセットを反映した値を返す"""
    today = get_canonical_today()
    return user_schema.ProfileBase(
        user_id=profile.user_id,
        username=profile.username,
        coin_balance=profile.coin_balance,
        daily_streak_count=profile.daily_streak_count,
        last_claim_day=profile.last_claim_day,
        spins_remaining=spin_service.current_spins(profile, today),
        spins_reset_day=max(profile.spins_reset_day, today),
    )


@router.post("/", response_model=user_schema.ProfileBase)
def create_user(
    user: user_schema.UserCreate,
    response: Response,
    store: ProfileStore = Depends(get_store),
):
    """
    新規ユーザーのプロフィールを作成します。すでに存在する場合は既存の情報を返します。
    """
    profile, created = store.create_profile(
        user.user_id, today=get_canonical_today(), username=user.username
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return to_profile_out(profile)


@router.get("/me", response_model=user_schema.ProfileBase)
def read_users_me(
    user_id: str = Depends(get_current_user_id),
    store: ProfileStore = Depends(get_store),
):
    """
    現在のユーザーのプロフィール（残高・連続日数・スピン回数）を取得します。
    """
    return to_profile_out(store.read_profile(user_id))


@router.get("/leaderboard", response_model=user_schema.LeaderboardResponse)
def read_leaderboard(
    store: ProfileStore = Depends(get_store),
    x_user_id: str | None = Header(default=None),
):
    """
    コイン上位ランキング。ログイン中なら自分の順位（自分より多いユーザー数 + 1）も返す。
    """
    top = store.top_profiles(settings.LEADERBOARD_SIZE)
    leaderboard = [
        user_schema.LeaderboardItem(
            user_id=p.user_id,
            username=p.username,
            coins=p.coin_balance,
            rank=i + 1,
        )
        for i, p in enumerate(top)
    ]

    user_rank = None
    if x_user_id:
        me = store.read_profile(x_user_id)
        user_rank = store.count_richer_than(me.coin_balance) + 1

    return user_schema.LeaderboardResponse(leaderboard=leaderboard, user_rank=user_rank)
