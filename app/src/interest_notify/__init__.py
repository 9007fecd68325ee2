"""interest_notify パッケージ。"""

from .app import create_app

__all__ = ["create_app"]
