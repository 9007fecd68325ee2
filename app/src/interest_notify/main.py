"""ローカル/ Lambda エントリポイント。"""

from __future__ import annotations

import os
from typing import Any

import uvicorn
from dotenv import load_dotenv
from mangum import Mangum

from .app import create_app

# ローカル実行時のみ .env を読む。既存の環境変数は上書きしない。
load_dotenv()

app = create_app()
# Lambda ではリクエスト間で状態を持てないため lifespan (定期掃除) は動かさない
_handler = Mangum(app, lifespan="off")


def lambda_handler(event: dict[str, Any], context: Any) -> Any:
    """AWS Lambda から呼び出されるエントリポイント"""
    return _handler(event, context)


def run_local() -> None:
    """`interest-notify-api` 用のローカル実行関数。"""
    host = os.getenv("APP_HOST", "0.0.0.0")
    port = app.state.settings.listen_port
    uvicorn.run("interest_notify.main:app", host=host, port=port)


if os.getenv("RUN_LOCAL") == "1":
    run_local()
