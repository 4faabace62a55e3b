"""进程内事件总线。

- emit(event, payload): 记录事件并同步分发给订阅者（按注册顺序）；
- on(event, handler): 订阅；
- sessionStatus：AuthController 每次状态迁移都会发出，ChannelBinding 以此驱动通道；
- channel:<kind>：ChannelManager 分发完入站事件后发出，供 UI 刷新。

不做线程切换，调用方所在线程即分发线程。
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List


SESSION_STATUS = "sessionStatus"


def channel_event_name(kind: str) -> str:
    return f"channel:{kind}"


class EventBus:
    def __init__(self, *, keep_history: bool = True) -> None:
        self.events: List[Dict[str, Any]] = []
        self.handlers: Dict[str, List[Callable[[Any], None]]] = {}
        self._keep_history = keep_history

    def on(self, event: str, handler: Callable[[Any], None]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event: str, payload: Any = None) -> None:
        if self._keep_history:
            self.events.append({"event": event, "payload": payload})
        for h in list(self.handlers.get(event, [])):
            h(payload)


__all__ = ["EventBus", "SESSION_STATUS", "channel_event_name"]
