"""送信フローの診断イベントを溜めるリングバッファ。

デバッグ用オーバーレイなどの表示側は `subscribe` で購読し、コントローラは
`publish` でイベントを流す。上限を超えたら古いものから捨てる。
"""

from __future__ import annotations

import json
import platform
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Literal

MAX_ENTRIES = 200

DebugSeverity = Literal["info", "success", "warn", "error"]

Listener = Callable[[list["DebugEntry"]], None]


@dataclass(frozen=True, slots=True)
class DebugEntry:
    timestamp: str
    source: str
    severity: DebugSeverity
    event: str
    details: dict[str, Any] = field(default_factory=dict)


class DebugLog:
    """上限付きのイベントリング。購読者には常にスナップショットを渡す。"""

    def __init__(self, max_entries: int = MAX_ENTRIES) -> None:
        self._entries: deque[DebugEntry] = deque(maxlen=max_entries)
        self._listeners: list[Listener] = []
        self._lock = Lock()

    def publish(
        self,
        source: str,
        severity: DebugSeverity,
        event: str,
        details: dict[str, Any] | None = None,
    ) -> DebugEntry:
        entry = DebugEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            source=source,
            severity=severity,
            event=event,
            details=dict(details or {}),
        )
        with self._lock:
            self._entries.append(entry)
        self._notify()
        return entry

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """購読を登録し、解除関数を返す。登録直後に現在の内容を通知する。"""

        with self._lock:
            self._listeners.append(listener)
        listener(self.entries())

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        self._notify()

    def entries(self) -> list[DebugEntry]:
        with self._lock:
            return list(self._entries)

    def format_report(self) -> str:
        """別のセッションへ貼り付けられるプレーンテキストのレポート。"""

        snapshot = self.entries()
        lines = [
            "## Debug Report",
            "",
            f"Generated: {datetime.now(timezone.utc).isoformat()}",
            f"Platform: {platform.platform()}",
            "",
            f"### Event Log ({len(snapshot)} entries)",
            "",
        ]
        for entry in snapshot:
            detail = f" | {json.dumps(entry.details, default=str)}" if entry.details else ""
            lines.append(
                f"[{entry.timestamp}] [{entry.severity.upper()}] [{entry.source}] {entry.event}{detail}"
            )
        return "\n".join(lines)

    def _notify(self) -> None:
        snapshot = self.entries()
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(snapshot)


debug_log = DebugLog()
