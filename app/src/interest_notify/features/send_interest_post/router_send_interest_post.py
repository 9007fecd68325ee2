"""問い合わせ受付エンドポイント。"""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse

from interest_notify.core.logging import log_error, log_event
from interest_notify.core.rate_limit import SlidingWindowRateLimiter
from interest_notify.core.settings import Settings
from interest_notify.features.send_interest_post import usecase_send_interest_post as usecase
from interest_notify.features.send_interest_post.schemas_send_interest_post import (
    ErrorResponse,
    SendInterestResponse,
)

SEND_INTEREST_PATH = "/send-interest"

INVALID_FIELDS_MESSAGE = "Invalid or missing fields. Name and a valid email are required."

router = APIRouter(tags=["interest"])


async def get_settings(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[attr-defined]


async def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter | None:
    return request.app.state.rate_limiter  # type: ignore[attr-defined]


def _elapsed_ms(request: Request) -> int:
    started = getattr(request.state, "request_started", None)
    if started is None:
        return 0
    return int((time.perf_counter() - started) * 1000)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(ErrorResponse(error=message).model_dump(), status_code=status_code)


@router.post(
    SEND_INTEREST_PATH,
    response_model=SendInterestResponse,
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def send_interest(
    request: Request,
    settings: Settings = Depends(get_settings),
    limiter: SlidingWindowRateLimiter | None = Depends(get_rate_limiter),
) -> SendInterestResponse | JSONResponse:
    """レート制限 → サイズ上限 → パース → 検証 → 送信の順でゲートを通す。"""

    if limiter is not None:
        client_ip = usecase.client_identity(request)
        if limiter.is_rate_limited(client_ip):
            log_event("rate_limited", client_ip=client_ip)
            return _error(429, "Too many requests. Please try again later.")

    try:
        raw = await usecase.read_body(request, max_bytes=settings.max_body_bytes)
    except usecase.BodyTooLargeError:
        return _error(413, "Request body too large")

    try:
        data = usecase.parse_json(raw)
    except ValueError:
        return _error(400, "Invalid JSON")

    if usecase.is_honeypot_tripped(data):
        log_event("honeypot_tripped", request_id=getattr(request.state, "request_id", ""))
        return SendInterestResponse()

    payload = usecase.validate_payload(data, message_required=settings.message_required)
    if payload is None:
        return _error(400, INVALID_FIELDS_MESSAGE)

    try:
        await run_in_threadpool(usecase.relay_interest, payload, settings=settings)
    except usecase.MailRelayError as exc:
        log_error(
            path=request.url.path,
            status=500,
            request_id=getattr(request.state, "request_id", ""),
            latency_ms=_elapsed_ms(request),
            error=exc,
        )
        return _error(500, "Failed to send email. Please try again later.")

    return SendInterestResponse()
