from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests

from microhire_shell.channel_transport import ChannelEventKind, ChannelTransport, EventSink
from microhire_shell.error_handling import ApiError


REMOTE_USER = {"id": "u-1", "email": "alice@example.com", "role": "student", "fullName": "Alice Remote"}


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class StubApi:
    """记录调用的身份服务替身；各接口行为由属性控制。"""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.reachable = True
        self.login_result: Any = {"accessToken": "A-REMOTE", "user": dict(REMOTE_USER)}
        self.me_result: Any = dict(REMOTE_USER)
        self.verify_result: Any = {"accessToken": "A-STEPUP"}
        self.register_result: Any = {"accessToken": "A-NEW", "user": dict(REMOTE_USER)}
        self.logout_error: Optional[Exception] = None

    def _call(self, op: str, result: Any, **fields: Any) -> Any:
        self.calls.append({"op": op, **fields})
        if not self.reachable:
            raise requests.ConnectionError("connection refused")
        if isinstance(result, Exception):
            raise result
        return result

    def ops(self, op: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["op"] == op]

    def health(self) -> Dict[str, Any]:
        return self._call("health", {"status": "ok"})

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._call("login", self.login_result, email=email, password=password)

    def register(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._call("register", self.register_result, payload=payload)

    def current_user(self, token: str) -> Dict[str, Any]:
        return self._call("me", self.me_result, token=token)

    def verify_login(self, email: str, code: str, challenge_token: Optional[str] = None) -> Dict[str, Any]:
        return self._call("verify", self.verify_result, email=email, code=code, challenge_token=challenge_token)

    def verify_recovery_code(self, email: str, code: str, challenge_token: Optional[str] = None) -> Dict[str, Any]:
        return self._call("recover", self.verify_result, email=email, code=code, challenge_token=challenge_token)

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self._call("forgot", {}, email=email)

    def reset_password(self, reset_token: str, password: str) -> Dict[str, Any]:
        return self._call("reset", {}, reset_token=reset_token)

    def logout(self, token: str) -> None:
        self._call("logout", self.logout_error, token=token)


def rejected(status: int = 401, message: str = "Invalid credentials") -> ApiError:
    return ApiError(status, None, message)


class FakeTransport(ChannelTransport):
    def __init__(self) -> None:
        self.url: Optional[str] = None
        self.token: Optional[str] = None
        self.sink: Optional[EventSink] = None
        self.closed = False
        self.emitted: List[Any] = []

    def open(self, url: str, token: str, sink: EventSink) -> None:
        self.url, self.token, self.sink = url, token, sink

    def close(self) -> None:
        self.closed = True

    def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))

    @property
    def connected(self) -> bool:
        return self.sink is not None and not self.closed

    def push(self, kind: ChannelEventKind, payload: Any = None) -> None:
        assert self.sink is not None
        self.sink(kind, payload)


class TransportFactory:
    def __init__(self) -> None:
        self.created: List[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport()
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]
