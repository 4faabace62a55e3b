"""实时通道生命周期管理。

- 同一时间至多一个传输实例；传输仍在连接、已连接或仍在自动重试时 connect() 为空操作，
  只有传输放弃（reconnect_failed、服务端主动断开、打开失败）后才会重建；
- 传输回调只把 ChannelEvent 放进队列，由 dispatch_pending()/run() 在宿主线程按到达顺序应用；
- 每次建连分配新的 generation，disconnect() 之后旧传输迟到的事件被丢弃，不会“复活”连接；
- 传输错误只记日志和 last_error，不向调用方抛出。
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .domain import ChannelConnection, ChannelState, ConversationMessage, Notification
from .channel_transport import ChannelEventKind, ChannelTransport, describe_error
from .event_bus import EventBus, channel_event_name
from .stores import MessageStore, NotificationStore, PresenceStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelEvent:
    kind: ChannelEventKind
    payload: Any
    generation: int


class ChannelManager:
    def __init__(
        self,
        url: str,
        transport_factory: Callable[[], ChannelTransport],
        *,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        """token_provider：返回当前允许使用的 token；与 connect() 传入的不一致时拒绝建连。"""

        self.url = url
        self._transport_factory = transport_factory
        self._token_provider = token_provider
        self._bus = bus
        self._transport: Optional[ChannelTransport] = None
        self._transport_gave_up = False
        self._generation = 0
        self._queue: "queue.Queue[ChannelEvent]" = queue.Queue()
        self.connection = ChannelConnection()
        self.notifications = NotificationStore()
        self.messages = MessageStore()
        self.presence = PresenceStore()

    # --- State ---
    @property
    def state(self) -> ChannelState:
        return self.connection.state

    @property
    def last_error(self) -> Optional[str]:
        return self.connection.last_error

    @property
    def is_connected(self) -> bool:
        return self.connection.state == ChannelState.CONNECTED

    # --- Lifecycle ---
    def connect(self, token: str) -> bool:
        if self._transport is not None and not self._transport_gave_up:
            return False
        if self._token_provider is not None and self._token_provider() != token:
            logger.info("channel connect refused: token is no longer current")
            return False
        return self._open(token)

    def retry(self) -> bool:
        """强制重新建连；取不到当前 token（已退出/不可达）时不做任何事。"""

        token = self._token_provider() if self._token_provider is not None else None
        if not token:
            logger.info("channel retry skipped: no current session token")
            return False
        return self._open(token)

    def disconnect(self) -> None:
        """幂等：没有连接时只保证存储为空、状态为 disconnected。"""

        transport = self._transport
        self._transport = None
        self._generation += 1
        if transport is not None:
            try:
                transport.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("channel transport close failed: %s", exc)
            logger.info("channel disconnected")
        self._drain()
        self.notifications.clear()
        self.messages.clear()
        self.presence.clear()
        self.connection.last_error = None
        self.connection.state = ChannelState.DISCONNECTED

    def _open(self, token: str) -> bool:
        if self._transport is not None:
            self.disconnect()
        self._generation += 1
        generation = self._generation
        self._transport_gave_up = False
        self.connection.state = ChannelState.CONNECTING
        self.connection.last_error = None
        transport = self._transport_factory()
        self._transport = transport
        logger.info("connecting channel to %s", self.url)
        try:
            transport.open(self.url, token, lambda kind, payload: self._enqueue(generation, kind, payload))
        except Exception as exc:  # noqa: BLE001
            logger.warning("channel transport failed to open: %s", exc)
            self._transport_gave_up = True
            self.connection.state = ChannelState.ERRORED
            self.connection.last_error = f"Connection failed: {exc}"
            return False
        return True

    # --- Outbound ---
    def send_message(self, data: Dict[str, Any]) -> bool:
        return self._emit("send_message", data)

    def join_conversation(self, conversation_id: str) -> bool:
        return self._emit("join_conversation", conversation_id)

    def leave_conversation(self, conversation_id: str) -> bool:
        return self._emit("leave_conversation", conversation_id)

    def mark_notification_read(self, notification_id: str) -> bool:
        """本地标记已读，并在连接可用时通知服务端。"""

        changed = self.notifications.mark_read(notification_id)
        self._emit("mark_notification_read", notification_id)
        return changed

    def _emit(self, event: str, data: Any) -> bool:
        if self._transport is None or not self.is_connected:
            logger.warning("cannot emit %s: channel not connected", event)
            return False
        try:
            self._transport.emit(event, data)
        except Exception as exc:  # noqa: BLE001
            logger.warning("channel emit %s failed: %s", event, exc)
            return False
        return True

    # --- Dispatch ---
    def _enqueue(self, generation: int, kind: ChannelEventKind, payload: Any) -> None:
        self._queue.put(ChannelEvent(kind=kind, payload=payload, generation=generation))

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def dispatch_pending(self, timeout: Optional[float] = None) -> int:
        """按到达顺序应用已排队事件，返回处理条数；timeout 给出时最多等待一条事件到达。"""

        handled = 0
        block = timeout is not None
        while True:
            try:
                event = self._queue.get(block=block, timeout=timeout)
            except queue.Empty:
                return handled
            block = False
            if event.generation != self._generation:
                continue
            self._apply(event)
            handled += 1

    def run(self, stop: threading.Event, poll_interval: float = 0.5) -> None:
        while not stop.is_set():
            self.dispatch_pending(timeout=poll_interval)

    def _apply(self, event: ChannelEvent) -> None:
        kind, payload = event.kind, event.payload
        conn = self.connection
        if kind == ChannelEventKind.CONNECT:
            conn.state = ChannelState.CONNECTED
            conn.last_error = None
            logger.info("channel connected")
        elif kind == ChannelEventKind.DISCONNECT:
            if payload in ("io server disconnect", "server disconnect"):
                conn.state = ChannelState.ERRORED
                conn.last_error = "Server disconnected"
                self._transport_gave_up = True
            else:
                # 传输层仍在自动重连
                conn.state = ChannelState.CONNECTING
            logger.info("channel lost: %s", payload)
        elif kind == ChannelEventKind.CONNECT_ERROR:
            conn.state = ChannelState.ERRORED
            conn.last_error = f"Connection failed: {describe_error(payload)}"
            logger.warning("channel connect error: %s", describe_error(payload))
        elif kind == ChannelEventKind.RECONNECT_FAILED:
            conn.state = ChannelState.ERRORED
            conn.last_error = "Failed to reconnect to server"
            self._transport_gave_up = True
            logger.warning("channel reconnection failed; real-time features disabled")
        elif kind == ChannelEventKind.ERROR:
            conn.last_error = f"Socket error: {describe_error(payload)}"
            logger.error("channel error: %s", describe_error(payload))
        elif kind == ChannelEventKind.NEW_MESSAGE:
            self.messages.append(ConversationMessage.from_payload(payload or {}))
        elif kind == ChannelEventKind.NEW_NOTIFICATION:
            self.notifications.add(Notification.from_payload(payload or {}))
        elif kind == ChannelEventKind.USER_STATUS_CHANGE:
            data = payload or {}
            self.presence.update(str(data.get("userId", "")), str(data.get("status", "")))
        elif kind == ChannelEventKind.APPLICATION_UPDATE:
            logger.info("application update: %s", payload)

        if self._bus is not None:
            self._bus.emit(channel_event_name(kind.value), payload)


__all__ = ["ChannelManager", "ChannelEvent"]
