from __future__ import annotations

import os

os.environ.setdefault("SMTP_HOST", "smtp.example.com")
os.environ.setdefault("SMTP_FROM", "cv-site@example.com")
os.environ.setdefault("RECIPIENT_EMAIL", "owner@example.com")

import pytest

from interest_notify.core import settings as core_settings
from interest_notify.core.debug_log import debug_log

ALLOWED_ORIGIN = "https://cv.example.com"


@pytest.fixture(autouse=True)
def basic_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """アプリ初期化に必要な環境変数をテスト時にセットする。"""

    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_FROM", "cv-site@example.com")
    monkeypatch.setenv("RECIPIENT_EMAIL", "owner@example.com")
    monkeypatch.setenv("ALLOWED_ORIGINS", ALLOWED_ORIGIN)
    for name in (
        "APP_ENV",
        "MAIL_TRANSPORT",
        "SMTP_USER",
        "SMTP_PASS",
        "SMTP_SECURE",
        "RATE_LIMIT_ENABLED",
        "RATE_LIMIT_MAX",
        "MAX_BODY_BYTES",
        "MESSAGE_REQUIRED",
        "INTEREST_API_URL",
        "SSM_PATH_PREFIX",
    ):
        monkeypatch.delenv(name, raising=False)
    core_settings.load_settings.cache_clear()
    debug_log.clear()
