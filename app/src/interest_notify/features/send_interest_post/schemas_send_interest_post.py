"""`/send-interest` のリクエスト/レスポンススキーマ。"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
    ValidationInfo,
    field_validator,
    model_validator,
)

MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 254
MAX_MESSAGE_LENGTH = 2000

# ローカル部・ドメインとも英数字で始まり英数字で終わる。最終ラベルは英字 2 文字以上。
EMAIL_PATTERN = re.compile(
    r"[a-zA-Z0-9](?:[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]*[a-zA-Z0-9])?"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)*\.[a-zA-Z]{2,}"
)


def is_valid_email(value: str) -> bool:
    """保守的なメールアドレス形式チェック。最終的な検証は SMTP 側に任せる。"""

    if len(value) > MAX_EMAIL_LENGTH or ".." in value:
        return False
    return EMAIL_PATTERN.fullmatch(value) is not None


class SendInterestRequest(BaseModel):
    """問い合わせフォームの送信内容。各フィールドは trim 済みで保持する。"""

    name: StrictStr
    email: StrictStr
    message: StrictStr
    honeypot: StrictStr = Field("", alias="_honeypot")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed or len(trimmed) > MAX_NAME_LENGTH:
            raise ValueError("name")
        return trimmed

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        if len(value) > MAX_EMAIL_LENGTH:
            raise ValueError("email")
        trimmed = value.strip()
        if not is_valid_email(trimmed):
            raise ValueError("email")
        return trimmed

    @field_validator("message")
    @classmethod
    def _check_message(cls, value: str) -> str:
        if len(value) > MAX_MESSAGE_LENGTH:
            raise ValueError("message")
        return value.strip()

    @model_validator(mode="after")
    def _check_message_required(self, info: ValidationInfo) -> "SendInterestRequest":
        required = bool((info.context or {}).get("message_required"))
        if required and not self.message:
            raise ValueError("message")
        return self


class SendInterestResponse(BaseModel):
    success: Literal[True] = True


class ErrorResponse(BaseModel):
    """クライアントに返すエラー。フィールド単位の詳細は含めない。"""

    error: str
