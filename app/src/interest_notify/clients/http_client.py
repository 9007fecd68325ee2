"""httpx クライアントの共通設定と、ブラウザの fetch に近い送信ヘルパー。"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Literal

import httpx

from interest_notify.core.scheduling import CancellationToken, Scheduler

DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=5.0)

FetchMode = Literal["cors", "no-cors"]

TIMEOUT_REASON = "timeout"


class FetchFailedError(RuntimeError):
    """接続不可・DNS 失敗・CORS ブロックを区別せずに表す例外。"""


class RequestTimeoutError(RuntimeError):
    """期限切れでリクエストを打ち切ったことを表す例外。"""


def create_async_client(
    *,
    timeout: httpx.Timeout | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """共通タイムアウト付きの AsyncClient を生成する。"""

    return httpx.AsyncClient(timeout=timeout or DEFAULT_TIMEOUT, transport=transport)


async def fetch(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    token: CancellationToken,
    deadline: float,
    scheduler: Scheduler,
    json: Any = None,
    mode: FetchMode = "cors",
    origin: str | None = None,
) -> httpx.Response:
    """期限付きで 1 回だけリクエストを送る。

    `deadline` 秒後に token を発火させ、進行中の呼び出しを打ち切る。
    cors モードでは Origin を送り、応答の Allow-Origin が一致しなければ
    ブラウザと同じく FetchFailedError として扱う。no-cors モードは到達性の
    確認用で、応答ヘッダは検査しない。
    """

    headers: dict[str, str] = {}
    if json is not None:
        headers["Content-Type"] = "application/json"
    if mode == "cors" and origin:
        headers["Origin"] = origin

    timer = scheduler.call_later(deadline, lambda: token.cancel(TIMEOUT_REASON))
    request_task = asyncio.ensure_future(
        client.request(method, url, json=json, headers=headers)
    )
    cancel_task = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait(
            {request_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if request_task not in done:
            request_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, httpx.HTTPError):
                await request_task
            if token.reason == TIMEOUT_REASON:
                raise RequestTimeoutError(f"Request aborted after {deadline}s")
            raise asyncio.CancelledError()
        try:
            response = request_task.result()
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(str(exc)) from exc
        except httpx.HTTPError as exc:
            # 接続失敗も応答の復号失敗も、ブラウザの fetch と同じく区別しない
            raise FetchFailedError(str(exc) or type(exc).__name__) from exc
    finally:
        timer.cancel()
        cancel_task.cancel()
        if not request_task.done():
            request_task.cancel()

    if mode == "cors" and origin:
        allow_origin = response.headers.get("access-control-allow-origin")
        if allow_origin not in ("*", origin):
            raise FetchFailedError("Blocked by CORS policy")
    return response
