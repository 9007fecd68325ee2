"""問い合わせフォーム送信コントローラのテスト。"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from interest_form_fakes import (
    PAGE_ORIGIN,
    FakeScheduler,
    RecordingHandler,
    connect_error,
    hang_forever,
    wait_for_timer,
)
from interest_notify.core.debug_log import debug_log
from interest_notify.features.interest_form.controller_interest_form import (
    ERROR_AUTO_DISMISS_SECONDS,
    FETCH_TIMEOUT_SECONDS,
    RETRY_DELAY_SECONDS,
    InterestFormController,
)
from interest_notify.features.interest_form.schemas_interest_form import (
    FAILURE_MESSAGES,
    FailureCause,
    SubmissionDraft,
    SubmissionStatus,
    message_for,
)


def _draft(**overrides: str) -> SubmissionDraft:
    values = {"name": "  Jane Doe ", "email": " jane@example.com ", "message": " Hello! "}
    values.update(overrides)
    return SubmissionDraft(**values)


def _ok(request: httpx.Request, _: int) -> httpx.Response:
    return httpx.Response(
        200,
        json={"success": True},
        headers={"Access-Control-Allow-Origin": PAGE_ORIGIN},
    )


class TestPreflightChecks:
    """ネットワークを使わずに確定するケース"""

    @pytest.mark.asyncio
    async def test_ハニーポットが埋まっていれば通信せず成功(self, make_controller) -> None:
        handler = RecordingHandler(_ok)
        controller = make_controller(handler)

        outcome = await controller.submit(_draft(honeypot="http://spam.example"))

        assert outcome.status is SubmissionStatus.SUCCESS
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_送信先未設定なら利用不可メッセージ(self, make_controller) -> None:
        handler = RecordingHandler(_ok)
        controller = make_controller(handler, endpoint_url=None)

        outcome = await controller.submit(_draft())

        assert outcome.status is SubmissionStatus.ERROR
        assert outcome.cause is FailureCause.NOT_CONFIGURED
        assert "not available" in (outcome.error_message or "")
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_オフラインなら通信しない(self, make_controller) -> None:
        handler = RecordingHandler(_ok)
        controller = make_controller(handler, is_online=lambda: False)

        outcome = await controller.submit(_draft())

        assert outcome.cause is FailureCause.OFFLINE
        assert handler.requests == []


class TestRequestExecution:
    """送信・リトライ方針"""

    @pytest.mark.asyncio
    async def test_成功するとtrim済みJSONを送り下書きを消す(
        self, make_controller
    ) -> None:
        handler = RecordingHandler(_ok)
        controller = make_controller(handler, origin=PAGE_ORIGIN)

        outcome = await controller.submit(_draft())

        assert outcome.status is SubmissionStatus.SUCCESS
        assert controller.draft == SubmissionDraft()
        (request,) = handler.requests
        assert request.method == "POST"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Origin"] == PAGE_ORIGIN
        assert json.loads(request.content) == {
            "name": "Jane Doe",
            "email": "jane@example.com",
            "message": "Hello!",
        }

    @pytest.mark.asyncio
    async def test_ハニーポットマーカーを付けて送れる(self, make_controller) -> None:
        handler = RecordingHandler(_ok)
        controller = make_controller(handler, include_honeypot_marker=True)

        await controller.submit(_draft())

        assert json.loads(handler.requests[0].content)["_honeypot"] == ""

    @pytest.mark.asyncio
    async def test_HTTP500は1回だけ送りリトライしない(
        self, make_controller, scheduler: FakeScheduler
    ) -> None:
        handler = RecordingHandler(lambda request, _: httpx.Response(500))
        controller = make_controller(handler)

        outcome = await controller.submit(_draft())

        assert outcome.status is SubmissionStatus.ERROR
        assert outcome.cause is FailureCause.HTTP_ERROR
        assert len(handler.requests) == 1
        assert scheduler.sleeps == []
        assert controller.draft.name == "  Jane Doe "

    @pytest.mark.asyncio
    async def test_HTTP429はレート制限メッセージ(self, make_controller) -> None:
        handler = RecordingHandler(lambda request, _: httpx.Response(429))
        controller = make_controller(handler)

        outcome = await controller.submit(_draft())

        assert outcome.cause is FailureCause.RATE_LIMITED
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_接続エラー2回で打ち切り3回目は送らない(
        self, make_controller, scheduler: FakeScheduler
    ) -> None:
        def respond(request: httpx.Request, call_no: int) -> httpx.Response:
            if call_no <= 2:
                raise connect_error(request)
            return httpx.Response(200, json={"status": "ok"})

        handler = RecordingHandler(respond)
        controller = make_controller(handler)

        outcome = await controller.submit(_draft())

        assert outcome.status is SubmissionStatus.ERROR
        assert len(handler.posts()) == 2
        assert scheduler.sleeps == [RETRY_DELAY_SECONDS]
        # 3 回目の呼び出しは診断用のヘルスチェック
        assert handler.requests[2].method == "GET"
        assert outcome.cause is FailureCause.CORS_MISCONFIGURED

    @pytest.mark.asyncio
    async def test_接続エラー後のリトライで成功すれば下書きを消す(
        self, make_controller, scheduler: FakeScheduler
    ) -> None:
        def respond(request: httpx.Request, call_no: int) -> httpx.Response:
            if call_no == 1:
                raise connect_error(request)
            return httpx.Response(200, json={"success": True})

        handler = RecordingHandler(respond)
        controller = make_controller(handler)

        outcome = await controller.submit(_draft())

        assert outcome.status is SubmissionStatus.SUCCESS
        assert controller.draft == SubmissionDraft()
        assert len(handler.posts()) == 2
        assert scheduler.sleeps == [RETRY_DELAY_SECONDS]

    @pytest.mark.asyncio
    async def test_AllowOriginが無い応答はCORSブロックとしてリトライする(
        self, make_controller
    ) -> None:
        handler = RecordingHandler(lambda request, _: httpx.Response(200))
        controller = make_controller(handler, origin=PAGE_ORIGIN)

        outcome = await controller.submit(_draft())

        assert outcome.status is SubmissionStatus.ERROR
        assert len(handler.posts()) == 2

    @pytest.mark.asyncio
    async def test_復号できない応答でも送信中のまま固まらない(
        self, make_controller
    ) -> None:
        handler = RecordingHandler(
            lambda request, _: httpx.Response(
                200, content=b"not gzip", headers={"Content-Encoding": "gzip"}
            )
        )
        controller = make_controller(handler)

        outcome = await controller.submit(_draft())

        assert outcome.status is SubmissionStatus.ERROR
        assert outcome.cause is FailureCause.NETWORK
        assert len(handler.posts()) == 2

        await controller.submit()

        assert controller.status is SubmissionStatus.ERROR
        assert len(handler.posts()) == 4

    @pytest.mark.asyncio
    async def test_想定外の例外は汎用エラーで終わり再送信できる(
        self, make_controller
    ) -> None:
        def respond(request: httpx.Request, _: int) -> httpx.Response:
            raise RuntimeError("transport exploded")

        handler = RecordingHandler(respond)
        controller = make_controller(handler)

        outcome = await controller.submit(_draft())

        assert outcome.status is SubmissionStatus.ERROR
        assert outcome.cause is FailureCause.UNKNOWN
        assert any(entry.event == "unexpected-error" for entry in debug_log.entries())

        await controller.submit()

        assert len(handler.posts()) == 2

    @pytest.mark.asyncio
    async def test_送信先なしでexecute_requestは呼べない(self, make_controller) -> None:
        controller = make_controller(RecordingHandler(_ok), endpoint_url=None)

        with pytest.raises(ValueError):
            await controller.execute_request({"name": "Jane"})

    @pytest.mark.asyncio
    async def test_タイムアウトはリトライしない(
        self, make_controller, scheduler: FakeScheduler
    ) -> None:
        handler = RecordingHandler(hang_forever)
        controller = make_controller(handler)

        task = asyncio.create_task(controller.submit(_draft()))
        await wait_for_timer(scheduler, FETCH_TIMEOUT_SECONDS)
        assert controller.status is SubmissionStatus.SUBMITTING
        scheduler.fire(FETCH_TIMEOUT_SECONDS)
        outcome = await task

        assert outcome.cause is FailureCause.TIMEOUT
        assert outcome.error_message == message_for(FailureCause.TIMEOUT)
        assert len(handler.posts()) <= 1
        assert scheduler.sleeps == []

    @pytest.mark.asyncio
    async def test_送信中の再送信は受け付けない(
        self, make_controller, scheduler: FakeScheduler
    ) -> None:
        handler = RecordingHandler(hang_forever)
        controller = make_controller(handler)

        task = asyncio.create_task(controller.submit(_draft()))
        await wait_for_timer(scheduler, FETCH_TIMEOUT_SECONDS)
        second = await controller.submit(_draft(name="Other"))
        scheduler.fire(FETCH_TIMEOUT_SECONDS)
        await task

        assert second.status is SubmissionStatus.SUBMITTING
        assert len(scheduler.timers) <= 2

    @pytest.mark.asyncio
    async def test_破棄後に届いた古い結果は反映しない(
        self, make_controller, scheduler: FakeScheduler
    ) -> None:
        release = asyncio.Event()

        async def respond(request: httpx.Request, _: int) -> httpx.Response:
            await release.wait()
            return httpx.Response(500)

        handler = RecordingHandler(respond)
        controller = make_controller(handler)

        task = asyncio.create_task(controller.submit(_draft()))
        await wait_for_timer(scheduler, FETCH_TIMEOUT_SECONDS)
        controller.reset()
        release.set()
        await task

        assert controller.status is SubmissionStatus.IDLE
        assert scheduler.pending(ERROR_AUTO_DISMISS_SECONDS) == []


class TestDismiss:
    """エラー表示の自動消去と明示的な操作"""

    @pytest.mark.asyncio
    async def test_エラーは一定時間後にidleへ戻る(
        self, make_controller, scheduler: FakeScheduler
    ) -> None:
        controller = make_controller(RecordingHandler(_ok), endpoint_url=None)
        await controller.submit(_draft())

        scheduler.fire(ERROR_AUTO_DISMISS_SECONDS)

        assert controller.status is SubmissionStatus.IDLE
        assert controller.outcome.error_message is None

    @pytest.mark.asyncio
    async def test_明示的に閉じるとタイマーを取り消す(
        self, make_controller, scheduler: FakeScheduler
    ) -> None:
        controller = make_controller(RecordingHandler(_ok), endpoint_url=None)
        await controller.submit(_draft())
        (timer,) = scheduler.pending(ERROR_AUTO_DISMISS_SECONDS)

        controller.dismiss()

        assert timer.cancelled
        assert controller.status is SubmissionStatus.IDLE

    @pytest.mark.asyncio
    async def test_再送信すると前回の自動消去を取り消す(
        self, make_controller, scheduler: FakeScheduler
    ) -> None:
        handler = RecordingHandler(lambda request, _: httpx.Response(500))
        controller = make_controller(handler)
        await controller.submit(_draft())
        (first_timer,) = scheduler.pending(ERROR_AUTO_DISMISS_SECONDS)

        await controller.submit()

        assert first_timer.cancelled
        assert len(scheduler.pending(ERROR_AUTO_DISMISS_SECONDS)) == 1

    @pytest.mark.asyncio
    async def test_成功表示は明示操作でのみidleへ戻る(
        self, make_controller, scheduler: FakeScheduler
    ) -> None:
        controller = make_controller(RecordingHandler(_ok))
        await controller.submit(_draft())

        assert scheduler.pending(ERROR_AUTO_DISMISS_SECONDS) == []
        assert controller.status is SubmissionStatus.SUCCESS

        controller.send_another()

        assert controller.status is SubmissionStatus.IDLE

    @pytest.mark.asyncio
    async def test_状態変化を通知する(self, make_controller) -> None:
        seen: list[SubmissionStatus] = []
        controller = make_controller(
            RecordingHandler(_ok), on_change=lambda outcome: seen.append(outcome.status)
        )

        await controller.submit(_draft())

        assert seen == [SubmissionStatus.SUBMITTING, SubmissionStatus.SUCCESS]


@pytest.mark.asyncio
async def test_デバッグログには入力内容ではなく長さだけを残す(make_controller) -> None:
    controller = make_controller(RecordingHandler(_ok))

    await controller.submit(_draft(message=""))

    submit_entry = next(entry for entry in debug_log.entries() if entry.event == "submit")
    assert submit_entry.details["fields"] == {
        "name": "8 chars",
        "email": "16 chars",
        "message": "empty",
    }
    assert "Jane" not in debug_log.format_report()


def test_全ての失敗原因にメッセージがある() -> None:
    assert set(FAILURE_MESSAGES) == set(FailureCause)
    assert all(message.strip() for message in FAILURE_MESSAGES.values())


def test_環境変数から送信先を読む(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INTEREST_API_URL", "https://api.example.com/send-interest")

    controller = InterestFormController.from_env()

    assert controller.endpoint_url == "https://api.example.com/send-interest"


def test_環境変数が空なら機能は無効() -> None:
    controller = InterestFormController.from_env()

    assert controller.endpoint_url is None
