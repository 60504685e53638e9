import uuid
from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.database import Base


# --- 1. Profile Model (ユーザーのエンゲージメント状態) ---
class Profile(Base):
    """
    残高・連続ログイン・スピン回数。
    更新は ProfileStore.atomic_update 経由のみ（UIから直接代入しない）。
    """

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    # 認証基盤側のユーザーID
    user_id = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(255), nullable=True)

    coin_balance = Column(Integer, nullable=False, default=0)
    daily_streak_count = Column(Integer, nullable=False, default=0)
    last_claim_day = Column(Date, nullable=True)
    spins_remaining = Column(Integer, nullable=False, default=0)
    spins_reset_day = Column(Date, nullable=False)

    # 楽観ロック用のバージョン
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # リレーション
    grants = relationship("GrantRecord", back_populates="profile")
    spin_outcomes = relationship("SpinOutcome", back_populates="profile")

    __mapper_args__ = {"version_id_col": version}


# --- 2. GrantRecord Model (付与台帳・追記のみ) ---
class GrantRecord(Base):
    __tablename__ = "grants"

    id = Column(Integer, primary_key=True, index=True)
    # 冪等キー: "streak:<user>:<day>", "spin:<outcome>", "<outcome>:double" など
    idempotency_key = Column(String(255), unique=True, index=True, nullable=False)
    user_id = Column(String(255), ForeignKey("profiles.user_id"), index=True)
    kind = Column(String(32), nullable=False, default="coins")  # 'coins' | 'spins'
    amount = Column(Integer, nullable=False)
    applied_at = Column(DateTime(timezone=True), nullable=False)

    # リレーション
    profile = relationship("Profile", back_populates="grants")


# --- 3. SpinOutcome Model (スピン結果・作成後は不変) ---
class SpinOutcome(Base):
    __tablename__ = "spin_outcomes"

    id = Column(Integer, primary_key=True, index=True)
    outcome_id = Column(
        String(64), unique=True, index=True, default=lambda: uuid.uuid4().hex
    )
    user_id = Column(String(255), ForeignKey("profiles.user_id"), index=True)
    winning_index = Column(Integer, nullable=False)
    reward_amount = Column(Integer, nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False)

    # リレーション
    profile = relationship("Profile", back_populates="spin_outcomes")
