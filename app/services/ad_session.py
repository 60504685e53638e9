# engagement-backend/app/services/ad_session.py
"""
広告SDKのライフサイクルを状態遷移表で管理する

    Idle -> Loading -> Ready -> Presenting -> Rewarded -> Loading
    Loading --error--> Failed --(retry_delay)--> Loading
    Presenting --closed(報酬なし)--> Loading
    Rewarded --closed / error--> Loading

- show() は Ready のときだけ有効。それ以外は NotReady（キューには積まない）
- 報酬付与 (on_reward) を呼べるのは Rewarded に遷移した時だけ、1回の表示につき1回
- 付与が一時的に失敗した報酬は保持し、確定するまで同じ ad_session_id で送り直す
- Failed と Loading は呼び出し側から見るとどちらも「準備中」
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from app.core.config import settings
from app.core.errors import EngagementError, NotReady
from app.services import grant_ledger, spin_service

logger = logging.getLogger(__name__)


class AdSessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    PRESENTING = "presenting"
    REWARDED = "rewarded"
    FAILED = "failed"


class AdEventType(str, Enum):
    LOADED = "loaded"
    OPENED = "opened"
    REWARDED = "rewarded"
    CLOSED = "closed"
    ERROR = "error"


class AdUnitKind(str, Enum):
    REWARDED = "rewarded"
    INTERSTITIAL = "interstitial"


@dataclass(frozen=True)
class AdEvent:
    type: AdEventType
    amount: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class AdReward:
    ad_session_id: str
    amount: int


class AdProvider(Protocol):
    """広告SDK側。結果はイベントとして AdSession.handle に戻ってくる"""

    def load(self) -> None: ...

    def show(self) -> None: ...


Listener = Callable[[AdSessionState, AdSessionState], None]
Scheduler = Callable[[float, Callable[[], None]], object]


TRANSITIONS: Dict[Tuple[AdSessionState, AdEventType], AdSessionState] = {
    (AdSessionState.LOADING, AdEventType.LOADED): AdSessionState.READY,
    (AdSessionState.LOADING, AdEventType.ERROR): AdSessionState.FAILED,
    # 読み込み済みの広告が期限切れになった場合
    (AdSessionState.READY, AdEventType.ERROR): AdSessionState.FAILED,
    (AdSessionState.PRESENTING, AdEventType.OPENED): AdSessionState.PRESENTING,
    (AdSessionState.PRESENTING, AdEventType.REWARDED): AdSessionState.REWARDED,
    (AdSessionState.PRESENTING, AdEventType.CLOSED): AdSessionState.LOADING,
    (AdSessionState.PRESENTING, AdEventType.ERROR): AdSessionState.LOADING,
    (AdSessionState.REWARDED, AdEventType.CLOSED): AdSessionState.LOADING,
    (AdSessionState.REWARDED, AdEventType.ERROR): AdSessionState.LOADING,
}


def thread_scheduler(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class AdSession:
    """広告ユニット1つ分の状態機械。アプリ内で1インスタンスを長く持つ"""

    def __init__(
        self,
        provider: AdProvider,
        on_reward: Optional[Callable[[AdReward], object]] = None,
        retry_delay: Optional[float] = None,
        scheduler: Optional[Scheduler] = None,
        kind: AdUnitKind = AdUnitKind.REWARDED,
    ):
        self.provider = provider
        self.on_reward = on_reward
        self.retry_delay = settings.AD_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.scheduler = scheduler or thread_scheduler
        self.kind = kind

        self._state = AdSessionState.IDLE
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()
        self._retry_handle = None
        self._reward_retry_handle = None
        self._presentation_id: Optional[str] = None
        # 報酬を受け付けた表示ID（1回の表示につき1回）
        self._rewarded_presentation: Optional[str] = None
        # 付与が確定していない報酬。成功するまで同じ ad_session_id で送り直す
        self._pending_rewards: List[AdReward] = []

    @property
    def state(self) -> AdSessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == AdSessionState.READY

    @property
    def pending_rewards(self) -> List[AdReward]:
        with self._lock:
            return list(self._pending_rewards)

    # ------------------------------------------------------------------
    # 購読
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """状態が変わるたびに listener(old, new) を呼ぶ。戻り値で購読解除"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # 操作
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._state != AdSessionState.IDLE:
                return
            self._transition(AdSessionState.LOADING)

    def stop(self) -> None:
        with self._lock:
            self._cancel_retry()
            self._cancel_reward_retry()
            self._presentation_id = None
            if self._state != AdSessionState.IDLE:
                self._transition(AdSessionState.IDLE)

    def show(self) -> str:
        """広告を表示する。Ready 以外では NotReady（状態は変えない）"""
        with self._lock:
            if self._state != AdSessionState.READY:
                raise NotReady()
            self._presentation_id = uuid.uuid4().hex
            self._transition(AdSessionState.PRESENTING)
            presentation_id = self._presentation_id

        try:
            self.provider.show()
        except Exception:
            logger.exception("ad show failed: kind=%s", self.kind.value)
            with self._lock:
                if self._state == AdSessionState.PRESENTING:
                    self._transition(AdSessionState.LOADING)
            raise
        return presentation_id

    def handle(self, event: AdEvent) -> AdSessionState:
        """SDKからのイベントを反映する。現在の状態で無効なイベントは無視"""
        with self._lock:
            if event.type == AdEventType.REWARDED and self.kind != AdUnitKind.REWARDED:
                logger.debug("reward event ignored for %s unit", self.kind.value)
                return self._state

            if event.type == AdEventType.REWARDED and self._state == AdSessionState.REWARDED:
                # 重複イベント。未確定の報酬があれば再送の契機にする
                deliver = bool(self._pending_rewards)
            else:
                new_state = TRANSITIONS.get((self._state, event.type))
                if new_state is None:
                    logger.debug(
                        "ad event ignored: kind=%s state=%s event=%s",
                        self.kind.value,
                        self._state.value,
                        event.type.value,
                    )
                    return self._state

                if event.type == AdEventType.ERROR:
                    logger.warning(
                        "ad error: kind=%s state=%s error=%s",
                        self.kind.value,
                        self._state.value,
                        event.error,
                    )

                deliver = False
                if new_state == AdSessionState.REWARDED:
                    deliver = self._accept_reward(event.amount)

                if new_state != self._state:
                    self._transition(new_state)

        if deliver:
            self._deliver_pending()
        return self._state

    def retry_pending_reward(self) -> bool:
        """未確定の報酬を同じ ad_session_id で送り直す。すべて確定すれば True"""
        return self._deliver_pending()

    # ------------------------------------------------------------------
    # 報酬
    # ------------------------------------------------------------------

    def _accept_reward(self, amount: int) -> bool:
        presentation_id = self._presentation_id
        if presentation_id is None or self._rewarded_presentation == presentation_id:
            return False
        self._rewarded_presentation = presentation_id
        if self.on_reward is None:
            return False
        self._pending_rewards.append(AdReward(ad_session_id=presentation_id, amount=amount))
        return True

    def _deliver_pending(self) -> bool:
        # on_reward はロックの外で呼ぶ（付与はDBアクセスを伴う）
        while True:
            with self._lock:
                if not self._pending_rewards:
                    return True
                reward = self._pending_rewards[0]
                self._cancel_reward_retry()

            try:
                self.on_reward(reward)
            except EngagementError as e:
                if not e.retryable:
                    logger.error(
                        "ad reward rejected: ad_session_id=%s code=%s",
                        reward.ad_session_id,
                        e.code,
                    )
                    self._drop_reward(reward)
                    raise
                logger.warning(
                    "ad reward grant failed, retrying in %ss: ad_session_id=%s code=%s",
                    self.retry_delay,
                    reward.ad_session_id,
                    e.code,
                )
                with self._lock:
                    self._schedule_reward_retry()
                return False

            self._drop_reward(reward)

    def _drop_reward(self, reward: AdReward) -> None:
        with self._lock:
            if reward in self._pending_rewards:
                self._pending_rewards.remove(reward)

    def _schedule_reward_retry(self) -> None:
        self._cancel_reward_retry()
        self._reward_retry_handle = self.scheduler(self.retry_delay, self._retry_reward)

    def _cancel_reward_retry(self) -> None:
        handle = self._reward_retry_handle
        self._reward_retry_handle = None
        if handle is not None and hasattr(handle, "cancel"):
            handle.cancel()

    def _retry_reward(self) -> None:
        with self._lock:
            self._reward_retry_handle = None
        try:
            self._deliver_pending()
        except EngagementError:
            # スケジューラのスレッドには返せないのでログに残す
            logger.exception("ad reward retry failed: kind=%s", self.kind.value)

    # ------------------------------------------------------------------
    # 状態遷移
    # ------------------------------------------------------------------

    def _transition(self, new_state: AdSessionState) -> None:
        old_state = self._state
        self._state = new_state
        logger.info(
            "ad state: kind=%s %s -> %s", self.kind.value, old_state.value, new_state.value
        )

        if new_state == AdSessionState.LOADING:
            self._presentation_id = None
            self._cancel_retry()
        elif new_state == AdSessionState.FAILED:
            self._schedule_retry()

        for listener in list(self._listeners):
            listener(old_state, new_state)

        if new_state == AdSessionState.LOADING:
            self.provider.load()

    def _schedule_retry(self) -> None:
        self._cancel_retry()
        self._retry_handle = self.scheduler(self.retry_delay, self._retry)

    def _cancel_retry(self) -> None:
        handle = self._retry_handle
        self._retry_handle = None
        if handle is not None and hasattr(handle, "cancel"):
            handle.cancel()

    def _retry(self) -> None:
        with self._lock:
            self._retry_handle = None
            if self._state != AdSessionState.FAILED:
                return
            logger.info("ad retry: kind=%s", self.kind.value)
            self._transition(AdSessionState.LOADING)


class AdRewardBridge:
    """
    リワード広告の報酬を付与台帳につなぐ。
    arm() で次の報酬の用途（スピン追加 / 2倍）を決め、付与が確定した時点で解除される。
    一時的な失敗では解除しないので、AdSession の再送がそのまま同じ用途で付与する。
    """

    PURPOSE_SPIN = "spin"
    PURPOSE_DOUBLE = "double"

    def __init__(self, store, user_id: str):
        self.store = store
        self.user_id = user_id
        self._purpose: Optional[str] = None
        self._outcome_id: Optional[str] = None
        self.results = []

    @property
    def armed(self) -> bool:
        return self._purpose is not None

    def arm(self, purpose: str, outcome_id: Optional[str] = None) -> None:
        if purpose not in (self.PURPOSE_SPIN, self.PURPOSE_DOUBLE):
            raise ValueError(f"unknown ad reward purpose: {purpose}")
        if purpose == self.PURPOSE_DOUBLE and not outcome_id:
            raise ValueError("outcome_id is required for the double reward")
        self._purpose = purpose
        self._outcome_id = outcome_id

    def disarm(self) -> None:
        self._purpose, self._outcome_id = None, None

    def __call__(self, reward: AdReward):
        purpose, outcome_id = self._purpose, self._outcome_id
        if purpose is None:
            logger.warning("ad reward without purpose: ad_session_id=%s", reward.ad_session_id)
            return None

        try:
            if purpose == self.PURPOSE_DOUBLE:
                result = grant_ledger.double_outcome(self.store, self.user_id, outcome_id)
            else:
                result = spin_service.grant_ad_spin(self.store, self.user_id, reward.ad_session_id)
        except EngagementError as e:
            if not e.retryable:
                self.disarm()
            raise

        self.disarm()
        self.results.append(result)
        return result
