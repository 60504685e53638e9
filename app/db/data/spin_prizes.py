# app/db/data/spin_prizes.py
"""
ラッキースピンの景品テーブル（サーバー側のみで保持）

weight の合計は 1.0。インデックスがホイール上のセグメント番号になる。
"""

import math

SPIN_PRIZES = [
    {"label": "20", "value": 20, "weight": 0.30},
    {"label": "50", "value": 50, "weight": 0.25},
    {"label": "100", "value": 100, "weight": 0.20},
    {"label": "200", "value": 200, "weight": 0.10},
    {"label": "500", "value": 500, "weight": 0.05},
    {"label": "1K", "value": 1000, "weight": 0.02},
    {"label": "Ticket", "value": 50, "weight": 0.08},
    {"label": "JACKPOT", "value": 5000, "weight": 0.0},  # 表示のみ（排出なし）
]

SPIN_WEIGHTS = tuple(p["weight"] for p in SPIN_PRIZES)


def validate_prizes(prizes) -> None:
    """景品テーブルの整合性チェック（不正なら ValueError）"""
    weights = [p["weight"] for p in prizes]
    if any(w < 0 for w in weights):
        raise ValueError("spin prize weights must be non-negative")
    if not math.isclose(sum(weights), 1.0, abs_tol=1e-9):
        raise ValueError(f"spin prize weights must sum to 1.0: {sum(weights)}")
    if any(p["value"] <= 0 for p in prizes):
        raise ValueError("spin prize values must be positive")


validate_prizes(SPIN_PRIZES)
