# engagement-backend/app/core/errors.py
"""
報酬エンジンの例外定義

ルーターでは捕捉せず、app/main.py の例外ハンドラーでレスポンスに変換する。
"""


class EngagementError(Exception):
    """報酬エンジンの基底例外"""

    code: str = "engagement_error"
    status_code: int = 400
    retryable: bool = False
    default_detail: str = "リクエストを処理できませんでした"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ProfileNotFound(EngagementError):
    code = "profile_not_found"
    status_code = 404
    default_detail = "ユーザーが見つかりません。先に登録してください。"


class NoSpinsAvailable(EngagementError):
    """スピン回数が0。翌日のリセットか広告視聴で回復する"""

    code = "no_spins_available"
    status_code = 409
    default_detail = "No spins left for today!"


class AlreadyClaimedToday(EngagementError):
    """本日分は受取済み。ユーザーにはエラーではなく受取済みとして返す"""

    code = "already_claimed_today"
    status_code = 200
    default_detail = "Already claimed today!"


class NotReady(EngagementError):
    """広告がReady以外の状態でshow()された"""

    code = "ad_not_ready"
    status_code = 409
    default_detail = "広告を準備中です。しばらくお待ちください。"


class TransientNetworkFailure(EngagementError):
    """確定レスポンスを得られなかった。状態は変わっていない前提で再試行可能"""

    code = "transient_failure"
    status_code = 503
    retryable = True
    default_detail = "一時的なエラーです。もう一度お試しください。"


class GrantNotFound(EngagementError):
    code = "grant_not_found"
    status_code = 404
    default_detail = "対象の付与記録が見つかりません"


class OutcomeNotFound(EngagementError):
    code = "outcome_not_found"
    status_code = 404
    default_detail = "スピン結果が見つかりません"


class InvalidGrant(EngagementError):
    code = "invalid_grant"
    status_code = 400
    default_detail = "付与額が不正です"


class GrantKeyConflict(EngagementError):
    """冪等キーが別ユーザーの付与記録で使われている"""

    code = "grant_key_conflict"
    status_code = 409
    default_detail = "この付与キーは使用できません"


class DuplicateGrantIgnored(Exception):
    """
    同じ冪等キーでの再付与。エラーではなく成功扱いの no-op としてログに残すだけ。
    呼び出し元へは送出しない。
    """

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(f"duplicate grant ignored: {idempotency_key}")
