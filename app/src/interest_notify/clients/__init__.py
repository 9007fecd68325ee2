"""外部サービスへの接続ヘルパーをまとめたパッケージ。"""

from __future__ import annotations

__all__ = [
    "http_client",
    "ses_client",
    "smtp_client",
]
