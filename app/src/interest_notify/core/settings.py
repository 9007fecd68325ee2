"""アプリ全体で共有する設定読み込みロジック。"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable

import boto3
from botocore.exceptions import ClientError


_DEFAULT_REGION = "ap-northeast-1"
_LOCAL_ENV = "local"
_TRUE_VALUES = {"1", "true", "yes", "on"}

MAIL_TRANSPORT_SMTP = "smtp"
MAIL_TRANSPORT_SES = "ses"


@dataclass(frozen=True, slots=True)
class Settings:
    """環境非依存で参照できる設定値の集合。"""

    app_env: str
    region: str
    mail_transport: str
    smtp_host: str
    smtp_port: int
    smtp_secure: bool
    smtp_username: str | None
    smtp_password: str | None
    mail_from: str
    recipient_email: str
    allowed_origins: list[str] = field(default_factory=list)
    listen_port: int = 3001
    smtp_timeout_seconds: float = 10.0
    rate_limit_enabled: bool = True
    rate_limit_max: int = 5
    rate_limit_window_seconds: int = 3600
    max_body_bytes: int = 10_000
    message_required: bool = False
    ssm_path_prefix: str | None = None


def parse_origins(raw: str | None) -> list[str]:
    """カンマ区切りのオリジン一覧を空要素を除いて返す。"""

    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_bool(raw: str | None, *, default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _parse_int(name: str, raw: str | None, *, default: int) -> int:
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"環境変数 {name} は整数である必要があります。") from exc


def _get_required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        raise ValueError(f"環境変数 {name} が未設定です。")
    return value.strip()


def _fetch_ssm_parameters(
    region: str,
    names: Iterable[str],
    prefix: str,
    optional_names: Iterable[str] = (),
) -> dict[str, str]:
    """SSM からまとめて取得する。optional_names は欠けていても失敗しない。"""

    name_list = [f"{prefix}/{name}" for name in names]
    optional_list = [f"{prefix}/{name}" for name in optional_names]
    client = boto3.client("ssm", region_name=region)
    try:
        resp = client.get_parameters(
            Names=name_list + optional_list, WithDecryption=True
        )
    except ClientError as exc:  # pragma: no cover - boto3 例外ラップ
        raise RuntimeError("SSM パラメータ取得に失敗しました。") from exc

    found = {item["Name"]: item["Value"] for item in resp.get("Parameters", [])}
    missing = {name for name in name_list if name not in found}
    if missing:
        raise ValueError(f"SSM パラメータ未設定: {', '.join(sorted(missing))}")
    return found


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """環境に応じて環境変数または SSM から設定を構築する。

    必須値が欠けている場合は ValueError を送出する。`create_app()` から
    呼ばれるため、設定不備はプロセス起動時点で失敗する。
    """

    app_env = os.getenv("APP_ENV", _LOCAL_ENV)
    region = os.getenv("REGION", _DEFAULT_REGION)
    mail_transport = os.getenv("MAIL_TRANSPORT", MAIL_TRANSPORT_SMTP).strip().lower()
    if mail_transport not in {MAIL_TRANSPORT_SMTP, MAIL_TRANSPORT_SES}:
        raise ValueError(f"MAIL_TRANSPORT が不正です: {mail_transport}")

    common = dict(
        app_env=app_env,
        region=region,
        mail_transport=mail_transport,
        smtp_port=_parse_int("SMTP_PORT", os.getenv("SMTP_PORT"), default=587),
        smtp_secure=_parse_bool(os.getenv("SMTP_SECURE"), default=False),
        allowed_origins=parse_origins(os.getenv("ALLOWED_ORIGINS")),
        listen_port=_parse_int("PORT", os.getenv("PORT"), default=3001),
        smtp_timeout_seconds=float(
            _parse_int("SMTP_TIMEOUT_SECONDS", os.getenv("SMTP_TIMEOUT_SECONDS"), default=10)
        ),
        rate_limit_enabled=_parse_bool(os.getenv("RATE_LIMIT_ENABLED"), default=True),
        rate_limit_max=_parse_int("RATE_LIMIT_MAX", os.getenv("RATE_LIMIT_MAX"), default=5),
        rate_limit_window_seconds=_parse_int(
            "RATE_LIMIT_WINDOW_SECONDS",
            os.getenv("RATE_LIMIT_WINDOW_SECONDS"),
            default=3600,
        ),
        max_body_bytes=_parse_int(
            "MAX_BODY_BYTES", os.getenv("MAX_BODY_BYTES"), default=10_000
        ),
        message_required=_parse_bool(os.getenv("MESSAGE_REQUIRED"), default=False),
    )

    if app_env == _LOCAL_ENV:
        smtp_host = (
            _get_required_env("SMTP_HOST")
            if mail_transport == MAIL_TRANSPORT_SMTP
            else os.getenv("SMTP_HOST", "")
        )
        return Settings(
            smtp_host=smtp_host,
            smtp_username=os.getenv("SMTP_USER") or None,
            smtp_password=os.getenv("SMTP_PASS") or None,
            mail_from=_get_required_env("SMTP_FROM"),
            recipient_email=_get_required_env("RECIPIENT_EMAIL"),
            ssm_path_prefix=None,
            **common,
        )

    # 本番では宛先や SMTP 資格情報を SSM に寄せる。資格情報は無くてもよい。
    prefix = os.getenv("SSM_PATH_PREFIX", "/interest-notify/prod")
    required_keys = ["mail/from", "mail/recipient"]
    optional_keys: list[str] = []
    if mail_transport == MAIL_TRANSPORT_SMTP:
        required_keys.append("smtp/host")
        optional_keys += ["smtp/user", "smtp/password"]
    values = _fetch_ssm_parameters(
        region=region, names=required_keys, prefix=prefix, optional_names=optional_keys
    )

    def from_ssm(key: str) -> str:
        return values.get(f"{prefix}/{key}", "")

    return Settings(
        smtp_host=from_ssm("smtp/host"),
        smtp_username=from_ssm("smtp/user") or None,
        smtp_password=from_ssm("smtp/password") or None,
        mail_from=from_ssm("mail/from"),
        recipient_email=from_ssm("mail/recipient"),
        ssm_path_prefix=prefix,
        **common,
    )
