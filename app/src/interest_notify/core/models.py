"""ユースケース間で共有するデータモデル。"""

from __future__ import annotations

from dataclasses import dataclass
from email.message import EmailMessage


@dataclass(frozen=True, slots=True)
class InterestPayload:
    """検証済み (trim 済み) の問い合わせ内容。"""

    name: str
    email: str
    message: str


@dataclass(frozen=True, slots=True)
class MailMessage:
    """通知メール 1 通分。保存はせず送信のたびに組み立てる。"""

    from_addr: str
    to_addr: str
    reply_to: str
    subject: str
    body: str

    @classmethod
    def from_payload(
        cls, payload: InterestPayload, *, from_addr: str, to_addr: str
    ) -> "MailMessage":
        """検証済みペイロードから通知メールを決定的に組み立てる。"""

        lines = [
            f"Name: {payload.name}",
            f"Email: {payload.email}",
            "",
            f"Message:\n{payload.message}" if payload.message else "(No message provided)",
        ]
        return cls(
            from_addr=from_addr,
            to_addr=to_addr,
            reply_to=payload.email,
            subject=_sanitize_header(f"Interest from {payload.name}"),
            body="\n".join(lines),
        )

    def to_email_message(self) -> EmailMessage:
        """smtplib が受け取る EmailMessage へ変換する。"""

        message = EmailMessage()
        message["From"] = self.from_addr
        message["To"] = self.to_addr
        message["Reply-To"] = self.reply_to
        message["Subject"] = self.subject
        message.set_content(self.body)
        return message


def _sanitize_header(value: str) -> str:
    # ヘッダインジェクション防止
    return value.replace("\r", " ").replace("\n", " ").strip()
