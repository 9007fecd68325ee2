"""到達不能時の原因切り分け。

送信が接続レベルで失敗した場合、呼び出し側からは「未デプロイ」「CORS 設定
ミス」「ネットワーク障害」の区別がつかない。ヘルスチェックを CORS あり /
なしの 2 通りで叩いて推定する。ヒューリスティックなので誤判定はありうる
(未知パスに汎用エラーページを返す CDN など)。
"""

from __future__ import annotations

import httpx

from interest_notify.clients.http_client import (
    FetchFailedError,
    RequestTimeoutError,
    fetch,
)
from interest_notify.core.debug_log import DebugLog, debug_log
from interest_notify.core.middleware import HEALTH_PATH
from interest_notify.core.scheduling import CancellationToken, Scheduler
from interest_notify.features.interest_form.schemas_interest_form import FailureCause

PROBE_TIMEOUT_SECONDS = 3.0

_SOURCE = "InterestForm"


def health_url_for(endpoint_url: str, health_path: str = HEALTH_PATH) -> str:
    """送信先と同じオリジンのヘルスチェック URL を返す。"""

    return str(httpx.URL(endpoint_url).join(health_path))


async def diagnose_failure(
    client: httpx.AsyncClient,
    endpoint_url: str,
    *,
    scheduler: Scheduler,
    origin: str | None = None,
    health_path: str = HEALTH_PATH,
    probe_timeout: float = PROBE_TIMEOUT_SECONDS,
    log: DebugLog = debug_log,
) -> FailureCause:
    """原因を推定して返す。例外は送出せず、判定不能なら UNKNOWN。"""

    try:
        cause = await _probe(
            client,
            health_url_for(endpoint_url, health_path),
            scheduler=scheduler,
            origin=origin,
            probe_timeout=probe_timeout,
        )
    except Exception as exc:  # 診断は例外を外に出さない
        log.publish(_SOURCE, "warn", "diagnosis-failed", {"error": repr(exc)})
        return FailureCause.UNKNOWN

    log.publish(_SOURCE, "info", "diagnosis", {"cause": cause.value})
    return cause


async def _probe(
    client: httpx.AsyncClient,
    health_url: str,
    *,
    scheduler: Scheduler,
    origin: str | None,
    probe_timeout: float,
) -> FailureCause:
    try:
        response = await fetch(
            client,
            "GET",
            health_url,
            token=CancellationToken(),
            deadline=probe_timeout,
            scheduler=scheduler,
            mode="cors",
            origin=origin,
        )
    except (FetchFailedError, RequestTimeoutError):
        pass
    else:
        # サーバーは動いているのに送信だけが接続エラー → CORS 設定ミス
        if response.is_success:
            return FailureCause.CORS_MISCONFIGURED
        return FailureCause.NOT_DEPLOYED

    try:
        await fetch(
            client,
            "GET",
            health_url,
            token=CancellationToken(),
            deadline=probe_timeout,
            scheduler=scheduler,
            mode="no-cors",
        )
    except (FetchFailedError, RequestTimeoutError):
        return FailureCause.NETWORK
    # ホストには届くがヘルスチェックが CORS で読めない → 関数が未デプロイ
    return FailureCause.NOT_DEPLOYED
