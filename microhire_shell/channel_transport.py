"""实时通道传输层。

ChannelTransport 是 ChannelManager 依赖的最小接口：open/close/emit/connected。
传输层把底层回调统一转换成 (kind, payload) 交给 sink，不持有任何会话/存储状态。

默认实现基于 python-socketio 同步客户端：
- 首次建连在传输自己的线程里按次数与间隔重试，close() 可随时中止；
- 建连后的断线重连由 socketio.Client 负责（次数与间隔有上限），shutdown() 中止；
- 连接在后台线程里建立，open() 不阻塞调用方；
- 自动重连耗尽后发出 reconnect_failed，交由上层当作非致命状态处理。
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

import socketio
from socketio import exceptions as socketio_exceptions


logger = logging.getLogger(__name__)


class ChannelEventKind(str, Enum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CONNECT_ERROR = "connect_error"
    NEW_MESSAGE = "new_message"
    NEW_NOTIFICATION = "new_notification"
    APPLICATION_UPDATE = "application_update"
    USER_STATUS_CHANGE = "user_status_change"
    ERROR = "error"
    RECONNECT_FAILED = "reconnect_failed"


# 服务端推送的业务事件，原样透传 payload
SERVER_EVENTS = (
    ChannelEventKind.NEW_MESSAGE,
    ChannelEventKind.NEW_NOTIFICATION,
    ChannelEventKind.APPLICATION_UPDATE,
    ChannelEventKind.USER_STATUS_CHANGE,
    ChannelEventKind.ERROR,
)

EventSink = Callable[[ChannelEventKind, Any], None]


class ChannelTransport:
    def open(self, url: str, token: str, sink: EventSink) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def emit(self, event: str, data: Any = None) -> None:
        raise NotImplementedError

    @property
    def connected(self) -> bool:
        raise NotImplementedError


class SocketIOTransport(ChannelTransport):
    def __init__(
        self,
        *,
        reconnection_attempts: int = 5,
        reconnection_delay: float = 2.0,
        timeout: float = 10.0,
        client_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._timeout = timeout
        self._attempts = reconnection_attempts
        self._delay = reconnection_delay
        factory = client_factory or socketio.Client
        self._client = factory(
            reconnection=True,
            reconnection_attempts=reconnection_attempts,
            reconnection_delay=reconnection_delay,
            reconnection_delay_max=reconnection_delay,
            logger=False,
        )
        self._sink: Optional[EventSink] = None
        self._closed = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def connected(self) -> bool:
        return bool(self._client.connected)

    def open(self, url: str, token: str, sink: EventSink) -> None:
        self._sink = sink
        self._register_handlers()
        self._thread = threading.Thread(target=self._run, args=(url, token), name="microhire-channel", daemon=True)
        self._thread.start()

    def close(self) -> None:
        self._closed.set()
        self._sink = None
        try:
            # shutdown 中止建连后的自动重连；首次建连中的重试由 _closed 中止
            self._client.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.warning("socket teardown raised: %s", exc)

    def emit(self, event: str, data: Any = None) -> None:
        self._client.emit(event, data)

    # --- Internal ---
    def _deliver(self, kind: ChannelEventKind, payload: Any = None) -> None:
        sink = self._sink
        if sink is not None and not self._closed.is_set():
            sink(kind, payload)

    def _register_handlers(self) -> None:
        client = self._client
        client.on("connect", lambda: self._deliver(ChannelEventKind.CONNECT))
        client.on("disconnect", lambda *args: self._deliver(ChannelEventKind.DISCONNECT, args[0] if args else None))
        client.on("connect_error", lambda data=None: self._deliver(ChannelEventKind.CONNECT_ERROR, data))
        for kind in SERVER_EVENTS:
            client.on(kind.value, self._forwarder(kind))

    def _forwarder(self, kind: ChannelEventKind) -> Callable[..., None]:
        def forward(data: Any = None) -> None:
            self._deliver(kind, data)

        return forward

    def _run(self, url: str, token: str) -> None:
        # 首次建连由本线程自行重试，close() 通过 _closed 随时中止；
        # 建连之后的断线重连交给 socketio.Client（shutdown() 可中止）
        failures = 0
        while not self._closed.is_set():
            try:
                self._client.connect(
                    url,
                    auth={"token": token},
                    transports=["websocket", "polling"],
                    wait_timeout=self._timeout,
                    retry=False,
                )
                break
            except socketio_exceptions.ConnectionError as exc:
                failures += 1
                if failures > self._attempts:
                    if not self._closed.is_set():
                        logger.warning("socket connection attempts exhausted: %s", exc)
                        self._deliver(ChannelEventKind.RECONNECT_FAILED, str(exc))
                    return
                logger.info("socket connect attempt %d failed: %s", failures, exc)
                if self._closed.wait(self._delay):
                    return
        if self._closed.is_set():
            # close() 落在建连过程中：不能留下挂着旧 token 的连接
            self._disconnect_quietly()
            return
        # wait() 在连接结束且自动重连放弃后返回
        self._client.wait()
        if not self._closed.is_set():
            logger.warning("socket reconnection gave up; real-time features disabled")
            self._deliver(ChannelEventKind.RECONNECT_FAILED, "reconnection attempts exhausted")

    def _disconnect_quietly(self) -> None:
        try:
            self._client.disconnect()
        except Exception as exc:  # noqa: BLE001
            logger.warning("socket disconnect after close raised: %s", exc)


def socketio_transport_factory(
    reconnection_attempts: int = 5,
    reconnection_delay: float = 2.0,
    timeout: float = 10.0,
) -> Callable[[], ChannelTransport]:
    def factory() -> ChannelTransport:
        return SocketIOTransport(
            reconnection_attempts=reconnection_attempts,
            reconnection_delay=reconnection_delay,
            timeout=timeout,
        )

    return factory


def describe_error(payload: Any) -> str:
    if isinstance(payload, dict):
        return str(payload.get("message") or payload)
    return str(payload) if payload is not None else "unknown error"


__all__ = [
    "ChannelEventKind",
    "ChannelTransport",
    "SocketIOTransport",
    "socketio_transport_factory",
    "describe_error",
    "SERVER_EVENTS",
    "EventSink",
]
