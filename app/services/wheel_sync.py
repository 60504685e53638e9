# engagement-backend/app/services/wheel_sync.py
"""
ホイール演出の同期

サーバーが確定したスピン結果（winning_index）から、ホイールの最終回転角を計算する。
演出専用で残高には一切影響しない。報酬は演出開始前に確定済み。

角度の約束:
- ポインターは 0 度（上）に固定
- セグメント i は回転 0 のとき [i * seg, (i + 1) * seg) を占める（時計回り）
- 回転角 R のとき、ポインターの下にあるのはホイール上の角度 (-R) mod 360
"""

import random
from dataclasses import dataclass
from typing import Optional

from app.core.config import settings

FULL_TURN = 360.0
JITTER_RATIO = 0.4  # セグメント境界に止まらないよう中心から ±40% に収める
MIN_EXTRA_TURNS = 2


def segment_angle(segment_count: int) -> float:
    if segment_count < 1:
        raise ValueError(f"segment_count must be >= 1: {segment_count}")
    return FULL_TURN / segment_count


def target_angle(
    winning_index: int,
    segment_count: int,
    current_rotation: float,
    rng: Optional[random.Random] = None,
    extra_turns: int = MIN_EXTRA_TURNS,
) -> float:
    """
    現在の累積回転角から前方向（増加方向）にだけ回して winning_index に止まる最終角度。
    最短の前方向回転に extra_turns 回転を足す。
    """
    seg = segment_angle(segment_count)
    if not 0 <= winning_index < segment_count:
        raise ValueError(f"winning_index out of range: {winning_index}")
    if extra_turns < MIN_EXTRA_TURNS:
        raise ValueError(f"extra_turns must be >= {MIN_EXTRA_TURNS}: {extra_turns}")

    rng = rng or random
    jitter = rng.uniform(-JITTER_RATIO, JITTER_RATIO) * seg
    target_within_turn = (-(winning_index * seg) - seg / 2 + jitter) % FULL_TURN

    forward = (target_within_turn - current_rotation % FULL_TURN) % FULL_TURN
    return current_rotation + forward + FULL_TURN * extra_turns


def landed_segment(rotation: float, segment_count: int) -> int:
    """回転角 rotation のときポインターが指しているセグメント"""
    seg = segment_angle(segment_count)
    under_pointer = (-rotation) % FULL_TURN
    return int(under_pointer // seg) % segment_count


def ease_out_cubic(t: float) -> float:
    """単調増加のイーズアウト (0 -> 0, 1 -> 1)"""
    t = min(max(t, 0.0), 1.0)
    return 1.0 - (1.0 - t) ** 3


@dataclass(frozen=True)
class SpinAnimationPlan:
    start_rotation: float
    final_rotation: float
    duration_seconds: float

    def rotation_at(self, elapsed_seconds: float) -> float:
        """経過時間での回転角。途中で画面を離れても結果には影響しない"""
        if self.duration_seconds <= 0:
            return self.final_rotation
        progress = ease_out_cubic(elapsed_seconds / self.duration_seconds)
        return self.start_rotation + (self.final_rotation - self.start_rotation) * progress

    def is_finished(self, elapsed_seconds: float) -> bool:
        return elapsed_seconds >= self.duration_seconds


def plan_spin_animation(
    winning_index: int,
    segment_count: int,
    current_rotation: float = 0.0,
    rng: Optional[random.Random] = None,
    duration_seconds: Optional[float] = None,
    extra_turns: Optional[int] = None,
) -> SpinAnimationPlan:
    minimum = settings.SPIN_ANIMATION_MIN_SECONDS
    duration = max(duration_seconds or minimum, minimum)
    final = target_angle(
        winning_index,
        segment_count,
        current_rotation,
        rng=rng,
        extra_turns=extra_turns or settings.SPIN_EXTRA_TURNS,
    )
    return SpinAnimationPlan(
        start_rotation=current_rotation,
        final_rotation=final,
        duration_seconds=duration,
    )
