# engagement-backend/app/utils/time_utils.py
"""
基準タイムゾーンの日付ユーティリティ

「1日1回」の判定はすべてここで計算した暦日を使う。クライアントの時計は参照しない。
"""

from datetime import date, datetime, timedelta
from typing import Optional

import pytz
from pytz import timezone as tz

from app.core.config import settings

CANONICAL_TZ = tz(settings.REWARD_TIMEZONE)


def get_canonical_now() -> datetime:
    """基準タイムゾーンの現在時刻を取得"""
    return datetime.now(CANONICAL_TZ)


def get_canonical_today() -> date:
    """基準タイムゾーンの今日の日付を取得"""
    return get_canonical_now().date()


def to_canonical(dt: datetime) -> datetime:
    """日時を基準タイムゾーンに変換（naive は UTC とみなす）"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(CANONICAL_TZ)


def calendar_day(dt: datetime) -> date:
    """指定日時が属する暦日（基準タイムゾーン）"""
    return to_canonical(dt).date()


def days_between(earlier: Optional[date], later: date) -> Optional[int]:
    """2つの暦日の差（日数）。earlier が None なら None"""
    if earlier is None:
        return None
    return (later - earlier).days


def next_day_start(dt: datetime = None) -> datetime:
    """次の日付切り替え時刻（基準タイムゾーンの0時）"""
    current = to_canonical(dt) if dt is not None else get_canonical_now()
    tomorrow = current.date() + timedelta(days=1)
    return CANONICAL_TZ.localize(datetime.combine(tomorrow, datetime.min.time()))


def day_key(day: date) -> str:
    """冪等キー用の日付文字列 (YYYY-MM-DD)"""
    return day.isoformat()
