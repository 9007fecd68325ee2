"""SMTP リレーへの送信ラッパー。"""

from __future__ import annotations

import smtplib
import ssl
from email.message import EmailMessage


def send_message(
    *,
    host: str,
    port: int,
    secure: bool,
    username: str | None,
    password: str | None,
    message: EmailMessage,
    timeout: float = 10.0,
) -> None:
    """1 通送信する。secure=True は暗黙 TLS、それ以外は提供されていれば STARTTLS。

    送信失敗は smtplib / OSError をそのまま送出する。リトライはしない。
    """

    context = ssl.create_default_context()
    if secure:
        with smtplib.SMTP_SSL(host, port, timeout=timeout, context=context) as smtp:
            _login(smtp, username, password)
            smtp.send_message(message)
        return

    with smtplib.SMTP(host, port, timeout=timeout) as smtp:
        smtp.ehlo()
        if smtp.has_extn("starttls"):
            smtp.starttls(context=context)
            smtp.ehlo()
        _login(smtp, username, password)
        smtp.send_message(message)


def _login(smtp: smtplib.SMTP, username: str | None, password: str | None) -> None:
    # 資格情報なしのリレーは認証を省略する
    if username:
        smtp.login(username, password or "")
