"""問い合わせフォームの送信コントローラ。

フォームの状態遷移 (idle → submitting → success / error) と、タイムアウト・
1 回だけのリトライ・到達不能時の原因推定を受け持つ。表示層は `submit` と
`dismiss` / `send_another` だけを呼べばよい。
"""

from __future__ import annotations

import contextlib
import os
from collections.abc import AsyncIterator
from typing import Callable

import httpx

from interest_notify.clients.http_client import (
    FetchFailedError,
    RequestTimeoutError,
    create_async_client,
    fetch,
)
from interest_notify.core.debug_log import DebugLog, debug_log
from interest_notify.core.middleware import HEALTH_PATH
from interest_notify.core.scheduling import (
    AsyncioScheduler,
    CancellationToken,
    Scheduler,
    TimerHandle,
)
from interest_notify.features.interest_form.diagnosis_interest_form import (
    diagnose_failure,
)
from interest_notify.features.interest_form.schemas_interest_form import (
    FailureCause,
    SubmissionDraft,
    SubmissionOutcome,
    SubmissionStatus,
)

FETCH_TIMEOUT_SECONDS = 10.0
RETRY_DELAY_SECONDS = 1.5
MAX_ATTEMPTS = 2
ERROR_AUTO_DISMISS_SECONDS = 8.0

ENDPOINT_ENV = "INTEREST_API_URL"

_SOURCE = "InterestForm"

OutcomeListener = Callable[[SubmissionOutcome], None]


class InterestFormController:
    """1 つのフォームインスタンスに対応する送信コントローラ。"""

    def __init__(
        self,
        endpoint_url: str | None,
        *,
        client: httpx.AsyncClient | None = None,
        origin: str | None = None,
        scheduler: Scheduler | None = None,
        is_online: Callable[[], bool] = lambda: True,
        on_change: OutcomeListener | None = None,
        include_honeypot_marker: bool = False,
        health_path: str = HEALTH_PATH,
        log: DebugLog = debug_log,
    ) -> None:
        self.endpoint_url = endpoint_url or None
        self.origin = origin
        self.draft = SubmissionDraft()
        self.outcome = SubmissionOutcome.idle()
        self._client = client
        self._scheduler = scheduler or AsyncioScheduler()
        self._is_online = is_online
        self._on_change = on_change
        self._include_honeypot_marker = include_honeypot_marker
        self._health_path = health_path
        self._log = log
        self._attempt = 0
        self._dismiss_timer: TimerHandle | None = None

    @classmethod
    def from_env(cls, **kwargs) -> "InterestFormController":
        """`INTEREST_API_URL` から送信先を読む。未設定なら機能は無効になる。"""

        return cls(os.getenv(ENDPOINT_ENV), **kwargs)

    @property
    def status(self) -> SubmissionStatus:
        return self.outcome.status

    async def submit(self, draft: SubmissionDraft | None = None) -> SubmissionOutcome:
        """フォーム内容を送信し、最終的な結果を返す。

        送信中に呼ばれた場合は何もせず現在の状態を返す。
        """

        if self.outcome.status is SubmissionStatus.SUBMITTING:
            return self.outcome
        if draft is not None:
            self.draft = draft

        self._cancel_dismiss_timer()
        self._attempt += 1
        attempt = self._attempt
        draft = self.draft

        # ボットには成功したように見せ、検知したことを悟らせない
        if draft.honeypot:
            self._log.publish(_SOURCE, "warn", "bot-detected")
            return self._apply(attempt, SubmissionOutcome.succeeded())

        if not self.endpoint_url:
            self._log.publish(_SOURCE, "error", "no-api-url")
            return self._apply(attempt, SubmissionOutcome.failed(FailureCause.NOT_CONFIGURED))

        if not self._is_online():
            self._log.publish(_SOURCE, "error", "offline")
            return self._apply(attempt, SubmissionOutcome.failed(FailureCause.OFFLINE))

        self._set_outcome(SubmissionOutcome.submitting())
        body = draft.to_request(include_honeypot_marker=self._include_honeypot_marker)
        self._log.publish(
            _SOURCE,
            "info",
            "submit",
            {"url": self.endpoint_url, "fields": draft.field_summary()},
        )

        try:
            cause = await self.execute_request(body)
        except Exception as exc:
            # 送信中のまま固まらないよう、必ず終端状態へ遷移させる
            self._log.publish(_SOURCE, "error", "unexpected-error", {"error": repr(exc)})
            cause = FailureCause.UNKNOWN
        if cause is None:
            return self._apply(attempt, SubmissionOutcome.succeeded(), clear_draft=True)
        return self._apply(attempt, SubmissionOutcome.failed(cause))

    async def execute_request(self, body: dict[str, object]) -> FailureCause | None:
        """送信を最大 MAX_ATTEMPTS 回試みる。成功なら None、失敗なら原因を返す。

        リトライするのは接続レベルの失敗だけ。HTTP エラー応答とタイムアウトは
        その場で確定する。
        """

        if not self.endpoint_url:
            raise ValueError("endpoint_url is not configured")
        async with self._client_session() as client:
            for attempt_no in range(1, MAX_ATTEMPTS + 1):
                try:
                    response = await fetch(
                        client,
                        "POST",
                        self.endpoint_url,
                        token=CancellationToken(),
                        deadline=FETCH_TIMEOUT_SECONDS,
                        scheduler=self._scheduler,
                        json=body,
                        mode="cors",
                        origin=self.origin,
                    )
                except RequestTimeoutError as exc:
                    self._log.publish(
                        _SOURCE, "error", "timeout", {"attempt": attempt_no, "error": str(exc)}
                    )
                    return FailureCause.TIMEOUT
                except FetchFailedError as exc:
                    self._log.publish(
                        _SOURCE,
                        "error",
                        "network-error",
                        {"attempt": attempt_no, "error": str(exc)},
                    )
                    if attempt_no < MAX_ATTEMPTS:
                        self._log.publish(
                            _SOURCE, "warn", "retry", {"delay_seconds": RETRY_DELAY_SECONDS}
                        )
                        await self._scheduler.sleep(RETRY_DELAY_SECONDS)
                    continue

                self._log.publish(
                    _SOURCE,
                    "success" if response.is_success else "error",
                    "response",
                    {"attempt": attempt_no, "status": response.status_code},
                )
                if response.is_success:
                    return None
                if response.status_code == 429:
                    return FailureCause.RATE_LIMITED
                return FailureCause.HTTP_ERROR

            if not self._is_online():
                return FailureCause.OFFLINE
            return await diagnose_failure(
                client,
                self.endpoint_url,
                scheduler=self._scheduler,
                origin=self.origin,
                health_path=self._health_path,
                log=self._log,
            )

    def dismiss(self) -> None:
        """エラー表示を閉じる。自動で閉じるタイマーも取り消す。"""

        self._cancel_dismiss_timer()
        if self.outcome.status is SubmissionStatus.ERROR:
            self._set_outcome(SubmissionOutcome.idle())

    def send_another(self) -> None:
        """成功表示から新しい入力へ戻る。"""

        if self.outcome.status is SubmissionStatus.SUCCESS:
            self._set_outcome(SubmissionOutcome.idle())

    def reset(self) -> None:
        """表示層が破棄されたときに呼ぶ。進行中の送信結果は反映されなくなる。"""

        self._cancel_dismiss_timer()
        self._attempt += 1
        self._set_outcome(SubmissionOutcome.idle())

    def _apply(
        self,
        attempt: int,
        outcome: SubmissionOutcome,
        *,
        clear_draft: bool = False,
    ) -> SubmissionOutcome:
        # 新しい試行が始まっていれば古い結果は捨てる
        if attempt != self._attempt:
            self._log.publish(_SOURCE, "info", "stale-result", {"attempt": attempt})
            return self.outcome

        if clear_draft:
            self.draft = SubmissionDraft()
        self._set_outcome(outcome)
        if outcome.status is SubmissionStatus.ERROR:
            self._dismiss_timer = self._scheduler.call_later(
                ERROR_AUTO_DISMISS_SECONDS, lambda: self._auto_dismiss(attempt)
            )
        return outcome

    def _auto_dismiss(self, attempt: int) -> None:
        self._dismiss_timer = None
        if attempt == self._attempt and self.outcome.status is SubmissionStatus.ERROR:
            self._set_outcome(SubmissionOutcome.idle())

    def _cancel_dismiss_timer(self) -> None:
        if self._dismiss_timer is not None:
            self._dismiss_timer.cancel()
            self._dismiss_timer = None

    def _set_outcome(self, outcome: SubmissionOutcome) -> None:
        self.outcome = outcome
        if self._on_change is not None:
            self._on_change(outcome)

    @contextlib.asynccontextmanager
    async def _client_session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with create_async_client() as client:
            yield client
