# engagement-backend/app/utils/__init__.py
"""
ユーティリティモジュール
"""

from .time_utils import (
    get_canonical_now,
    get_canonical_today,
    to_canonical,
    calendar_day,
    days_between,
    next_day_start,
    day_key,
    CANONICAL_TZ,
)
