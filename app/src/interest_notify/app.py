"""FastAPI アプリケーションの組み立てを担当するモジュール。"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from .core.logging import log_event
from .core.middleware import (
    HEALTH_PATH,
    cors_middleware,
    error_boundary_middleware,
    request_id_middleware,
)
from .core.rate_limit import SlidingWindowRateLimiter
from .core.settings import Settings, load_settings
from .features.send_interest_post.router_send_interest_post import router as interest_router

SWEEP_INTERVAL_SECONDS = 600

_STATUS_MESSAGES = {404: "Not found", 405: "Method not allowed"}


async def _sweep_periodically(limiter: SlidingWindowRateLimiter, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        removed = limiter.sweep()
        if removed:
            log_event("rate_limit_sweep", removed=removed, remaining=len(limiter))


@contextlib.asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    limiter: SlidingWindowRateLimiter | None = app.state.rate_limiter
    task = None
    if limiter is not None:
        task = asyncio.create_task(_sweep_periodically(limiter, SWEEP_INTERVAL_SECONDS))
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


def create_app(settings: Settings | None = None) -> FastAPI:
    """コア設定や共通ミドルウェアを組み込んだ FastAPI アプリを返す。

    設定が不足している場合は `load_settings()` が ValueError を送出し、
    起動そのものが失敗する。
    """

    settings = settings or load_settings()
    app = FastAPI(title="interest-notify", version="0.1.0", lifespan=_lifespan)
    app.state.settings = settings  # type: ignore[attr-defined]
    # サーバーレス構成ではインスタンス間で状態を共有できないため無効化する
    app.state.rate_limiter = (  # type: ignore[attr-defined]
        SlidingWindowRateLimiter(
            limit=settings.rate_limit_max,
            window_seconds=settings.rate_limit_window_seconds,
        )
        if settings.rate_limit_enabled
        else None
    )

    # 後から追加したものほど外側で実行される
    app.middleware("http")(error_boundary_middleware)
    app.middleware("http")(cors_middleware)
    app.middleware("http")(request_id_middleware)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        message = _STATUS_MESSAGES.get(exc.status_code, str(exc.detail))
        return JSONResponse(
            {"error": message}, status_code=exc.status_code, headers=exc.headers
        )

    @app.get(HEALTH_PATH, tags=["health"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(interest_router)

    return app
