"""FastAPI 用の共通ミドルウェア群。"""

from __future__ import annotations

import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.responses import JSONResponse

from interest_notify.core.logging import log_error, log_request
from interest_notify.core.settings import Settings

RequestHandler = Callable[[Request], Awaitable[Response]]

HEALTH_PATH = "/health"

_ALLOWED_METHODS = "POST, OPTIONS"
_ALLOWED_HEADERS = "Content-Type"
_MAX_AGE = "86400"


def is_origin_allowed(origin: str | None, allowed_origins: list[str]) -> bool:
    """Origin ヘッダが無いリクエスト (curl 等) は通す。"""

    if not origin:
        return True
    return origin in allowed_origins


def cors_headers(origin: str | None, allowed_origins: list[str]) -> dict[str, str]:
    """許可リストに含まれる Origin の場合のみ Allow-Origin を反射する。"""

    headers = {
        "Access-Control-Allow-Methods": _ALLOWED_METHODS,
        "Access-Control-Allow-Headers": _ALLOWED_HEADERS,
        "Access-Control-Max-Age": _MAX_AGE,
        "Vary": "Origin",
    }
    if origin and origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
    return headers


async def cors_middleware(request: Request, call_next: RequestHandler) -> Response:
    """Origin 検査・プリフライト応答・CORS ヘッダ付与をまとめて行う。"""

    settings: Settings = request.app.state.settings  # type: ignore[attr-defined]
    origin = request.headers.get("origin")

    headers = cors_headers(origin, settings.allowed_origins)

    # ヘルスチェックは診断用に CORS を全開放する
    if request.url.path == HEALTH_PATH:
        response = await call_next(request)
        response.headers.update(headers)
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    if not is_origin_allowed(origin, settings.allowed_origins):
        return JSONResponse({"error": "Forbidden"}, status_code=403, headers=headers)

    if request.method == "OPTIONS":
        return Response(status_code=204, headers=headers)

    response = await call_next(request)
    response.headers.update(headers)
    return response


async def error_boundary_middleware(
    request: Request, call_next: RequestHandler
) -> Response:
    """未処理例外を汎用 500 に変換する。1 リクエストでプロセスを落とさない。"""

    try:
        return await call_next(request)
    except Exception as exc:
        started = getattr(request.state, "request_started", time.perf_counter())
        log_error(
            path=request.url.path,
            status=500,
            request_id=getattr(request.state, "request_id", ""),
            latency_ms=int((time.perf_counter() - started) * 1000),
            error=exc,
        )
        return JSONResponse({"error": "Internal server error"}, status_code=500)


async def request_id_middleware(request: Request, call_next: RequestHandler) -> Response:
    """X-Request-Id を受理・生成しレスポンスヘッダへ付与する。"""

    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    request.state.request_id = request_id

    started = time.perf_counter()
    request.state.request_started = started
    response = await call_next(request)

    latency_ms = int((time.perf_counter() - started) * 1000)
    response.headers["X-Request-Id"] = request_id
    response.headers["X-Response-Time-Ms"] = str(latency_ms)
    log_request(
        path=request.url.path,
        status=response.status_code,
        request_id=request_id,
        latency_ms=latency_ms,
    )
    return response
