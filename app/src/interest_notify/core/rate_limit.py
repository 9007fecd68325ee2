"""IP 単位のスライディングウィンドウ型レート制限。

テーブルはプロセス内メモリのみで保持する。再起動でリセットされ、複数
インスタンス間では共有されない (個人サイト規模では許容)。
"""

from __future__ import annotations

import time
from threading import Lock
from typing import Callable


class SlidingWindowRateLimiter:
    """直近 `window_seconds` 秒の送信回数を `limit` 件に制限する。"""

    def __init__(
        self,
        *,
        limit: int = 5,
        window_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = Lock()
        self._records: dict[str, list[float]] = {}

    def is_rate_limited(self, key: str) -> bool:
        """上限に達していれば True。そうでなければ今回の送信を記録して False。"""

        if self.limit <= 0:
            return False
        now = self._clock()
        with self._lock:
            recent = self._prune(self._records.get(key, []), now)
            if len(recent) >= self.limit:
                self._records[key] = recent
                return True
            recent.append(now)
            self._records[key] = recent
            return False

    def sweep(self) -> int:
        """ウィンドウ外の記録を掃除し、削除したキー数を返す。"""

        now = self._clock()
        removed = 0
        with self._lock:
            for key in list(self._records):
                recent = self._prune(self._records[key], now)
                if recent:
                    self._records[key] = recent
                else:
                    del self._records[key]
                    removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _prune(self, timestamps: list[float], now: float) -> list[float]:
        return [ts for ts in timestamps if now - ts < self.window_seconds]
