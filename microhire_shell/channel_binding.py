"""会话状态 → 实时通道的唯一绑定点。

进入 AUTHENTICATED、后端可达且会话来自远端身份服务时连接；其它任何状态、
失去可达性或本地（离线数据集）会话时断开。本地 token 只在本进程内有效，不发给服务端。
UI 代码不直接调用 ChannelManager.connect/disconnect。
"""

from __future__ import annotations

from typing import Any, Dict

from .channel_manager import ChannelManager
from .domain import AuthSource, AuthStatus, Session
from .event_bus import SESSION_STATUS, EventBus


def wants_channel(session: Session) -> bool:
    return (
        session.status == AuthStatus.AUTHENTICATED
        and session.backend_reachable
        and session.auth_source == AuthSource.REMOTE
        and bool(session.token)
    )


class ChannelBinding:
    def __init__(self, channel: ChannelManager) -> None:
        self._channel = channel

    def attach(self, bus: EventBus) -> "ChannelBinding":
        bus.on(SESSION_STATUS, self.on_session_status)
        return self

    def on_session_status(self, payload: Dict[str, Any]) -> None:
        session: Session = payload["session"]
        if wants_channel(session):
            assert session.token is not None
            self._channel.connect(session.token)
        else:
            self._channel.disconnect()


__all__ = ["ChannelBinding", "wants_channel"]
