"""問い合わせ受付ユースケース。"""

from __future__ import annotations

import json
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from pydantic import ValidationError

from interest_notify.clients import ses_client, smtp_client
from interest_notify.core.models import InterestPayload, MailMessage
from interest_notify.core.settings import MAIL_TRANSPORT_SES, Settings
from interest_notify.features.send_interest_post.schemas_send_interest_post import (
    SendInterestRequest,
)


class BodyTooLargeError(ValueError):
    """ボディが上限を超えた。JSON パース前に送出される。"""


class MailRelayError(RuntimeError):
    """メール送信基盤での失敗。呼び出し元には詳細を返さない。"""


def client_identity(request: Request) -> str:
    """X-Forwarded-For の先頭、無ければ接続元アドレスを返す。"""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def read_body(request: Request, *, max_bytes: int) -> bytes:
    """上限付きでボディを読み込む。超過した時点で打ち切る。"""

    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise BodyTooLargeError("Request body too large")

    buffer = bytearray()
    async for chunk in request.stream():
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise BodyTooLargeError("Request body too large")
    return bytes(buffer)


def parse_json(raw: bytes) -> Any:
    """JSON として解釈できなければ ValueError。"""

    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError("Invalid JSON") from exc


def is_honeypot_tripped(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    value = data.get("_honeypot")
    return isinstance(value, str) and value.strip() != ""


def validate_payload(data: Any, *, message_required: bool = False) -> InterestPayload | None:
    """検証して trim 済みのペイロードを返す。不正なら None。

    出力を再度渡しても同じ結果になる (冪等)。
    """

    if isinstance(data, InterestPayload):
        data = {"name": data.name, "email": data.email, "message": data.message}
    try:
        request = SendInterestRequest.model_validate(
            data, context={"message_required": message_required}
        )
    except ValidationError:
        return None
    return InterestPayload(name=request.name, email=request.email, message=request.message)


def build_mail(payload: InterestPayload, *, settings: Settings) -> MailMessage:
    return MailMessage.from_payload(
        payload, from_addr=settings.mail_from, to_addr=settings.recipient_email
    )


def relay_interest(payload: InterestPayload, *, settings: Settings) -> MailMessage:
    """通知メールを組み立て、設定されたトランスポートへ 1 回だけ渡す。"""

    mail = build_mail(payload, settings=settings)
    try:
        if settings.mail_transport == MAIL_TRANSPORT_SES:
            ses_client.send_email(
                region=settings.region,
                source=mail.from_addr,
                to_addresses=[mail.to_addr],
                subject=mail.subject,
                body_text=mail.body,
                reply_to=[mail.reply_to],
            )
        else:
            smtp_client.send_message(
                host=settings.smtp_host,
                port=settings.smtp_port,
                secure=settings.smtp_secure,
                username=settings.smtp_username,
                password=settings.smtp_password,
                message=mail.to_email_message(),
                timeout=settings.smtp_timeout_seconds,
            )
    except (OSError, BotoCoreError, ClientError) as exc:
        # smtplib.SMTPException は OSError のサブクラス
        raise MailRelayError(f"{settings.mail_transport} send failed: {exc}") from exc
    return mail
