"""問い合わせフォーム (クライアント側) の状態モデル。"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SubmissionStatus(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


class FailureCause(str, Enum):
    """利用者向けメッセージを選ぶための失敗分類。"""

    NOT_CONFIGURED = "not_configured"
    OFFLINE = "offline"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    RATE_LIMITED = "rate_limited"
    NOT_DEPLOYED = "not_deployed"
    CORS_MISCONFIGURED = "cors_misconfigured"
    NETWORK = "network"
    UNKNOWN = "unknown"


# 技術的な詳細は出さず、次に取れる行動を添える
FAILURE_MESSAGES: dict[FailureCause, str] = {
    FailureCause.NOT_CONFIGURED: (
        "This feature is not available yet. Please reach out via email instead."
    ),
    FailureCause.OFFLINE: (
        "You appear to be offline. Please check your connection and try again."
    ),
    FailureCause.TIMEOUT: (
        "The request took too long. Please check your connection and try again."
    ),
    FailureCause.HTTP_ERROR: (
        "Something went wrong while sending your message. "
        "Please try again, or reach out directly via email."
    ),
    FailureCause.RATE_LIMITED: (
        "You've sent several messages recently. "
        "Please try again later, or reach out directly via email."
    ),
    FailureCause.NOT_DEPLOYED: (
        "The message service is currently unavailable. "
        "Please reach out directly via email instead."
    ),
    FailureCause.CORS_MISCONFIGURED: (
        "The message service is not accepting requests from this site right now. "
        "Please reach out directly via email instead."
    ),
    FailureCause.NETWORK: (
        "Could not connect to the message service. "
        "Please check your connection and try again."
    ),
    FailureCause.UNKNOWN: (
        "Could not reach the server. Please try again, or reach out directly via email."
    ),
}


def message_for(cause: FailureCause) -> str:
    return FAILURE_MESSAGES[cause]


@dataclass(slots=True)
class SubmissionDraft:
    """訪問者が入力中のフォーム内容。honeypot は人間には見えない。"""

    name: str = ""
    email: str = ""
    message: str = ""
    honeypot: str = ""

    def to_request(self, *, include_honeypot_marker: bool = False) -> dict[str, Any]:
        """送信用に trim したペイロードを返す。"""

        body: dict[str, Any] = {
            "name": self.name.strip(),
            "email": self.email.strip(),
            "message": self.message.strip(),
        }
        if include_honeypot_marker:
            body["_honeypot"] = ""
        return body

    def field_summary(self) -> dict[str, str]:
        """デバッグ用。内容ではなく長さだけを残す。"""

        body = self.to_request()
        return {
            key: f"{len(value)} chars" if value else "empty"
            for key, value in body.items()
        }


@dataclass(frozen=True, slots=True)
class SubmissionOutcome:
    status: SubmissionStatus
    error_message: str | None = None
    cause: FailureCause | None = None

    @classmethod
    def idle(cls) -> "SubmissionOutcome":
        return cls(SubmissionStatus.IDLE)

    @classmethod
    def submitting(cls) -> "SubmissionOutcome":
        return cls(SubmissionStatus.SUBMITTING)

    @classmethod
    def succeeded(cls) -> "SubmissionOutcome":
        return cls(SubmissionStatus.SUCCESS)

    @classmethod
    def failed(cls, cause: FailureCause) -> "SubmissionOutcome":
        return cls(SubmissionStatus.ERROR, error_message=message_for(cause), cause=cause)
