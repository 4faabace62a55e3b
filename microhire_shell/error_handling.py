"""壳层错误处理策略。

- ApiError：身份服务返回非 2xx 或 success=false 信封时由 HttpClient 抛出；
- map_error_to_action：把 HTTP 状态码/错误码映射成统一动作；
- handle_error_action：按动作执行本地清理与状态广播。

对 UI 暴露的文案集中在这里，凭据错误只有一条通用文案，避免账号枚举。
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional


INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
BACKEND_UNAVAILABLE_MESSAGE = "Backend not connected"
REGISTER_OFFLINE_MESSAGE = "Registration requires a connection to the server; offline registration is not supported"
INVALID_CODE_FORMAT_MESSAGE = "Please enter a valid 6-digit code"
EMPTY_RECOVERY_CODE_MESSAGE = "Please enter a recovery code"
INVALID_CODE_MESSAGE = "Invalid verification code. Please try again."
INVALID_RECOVERY_CODE_MESSAGE = "Invalid recovery code. Please try again."
NO_CHALLENGE_MESSAGE = "No second-factor challenge in progress"
NOT_AUTHENTICATED_MESSAGE = "Not signed in"
VERIFY_NETWORK_MESSAGE = "Failed to verify code. Please try again."


def lockout_message(remaining_seconds: int) -> str:
    return f"Too many failed attempts. Try again in {remaining_seconds} seconds."


class ApiError(Exception):
    """身份服务的业务失败（HTTP 错误或 success=false）。"""

    def __init__(self, status: int, code: Optional[str] = None, message: Optional[str] = None) -> None:
        self.status = status
        self.code = code
        self.message = message or f"request failed with status {status}"
        super().__init__(self.message)


class ErrorAction(str, Enum):
    LOGOUT = "logout"
    RATE_LIMIT = "rate_limit"
    INTERNAL = "internal"
    NOOP = "noop"


def map_error_to_action(status: Optional[int], code: Optional[str] = None, *, authenticated: bool = True) -> ErrorAction:
    """authenticated=False 时（如 login 接口），401 只代表凭据错误，不触发登出。"""

    if status == 401 or code in ("TOKEN_EXPIRED", "TOKEN_INVALID"):
        return ErrorAction.LOGOUT if authenticated else ErrorAction.NOOP
    if status == 429:
        return ErrorAction.RATE_LIMIT
    if status is not None and status >= 500:
        return ErrorAction.INTERNAL
    return ErrorAction.NOOP


def handle_error_action(
    action: ErrorAction,
    *,
    logout: Callable[[], None],
    broadcast_status: Callable[[str], None],
    on_rate_limit: Optional[Callable[[], None]] = None,
) -> None:
    """根据动作执行壳层侧统一处理。

    - logout: 清理本地凭据/会话，调用方应确保幂等；
    - broadcast_status: 广播 'expired' 状态；
    - on_rate_limit: 可选的限流提示。
    """

    if action == ErrorAction.LOGOUT:
        logout()
        broadcast_status("expired")
    elif action == ErrorAction.RATE_LIMIT:
        if on_rate_limit:
            on_rate_limit()
    else:
        # INTERNAL/NOOP：提示稍后再试，不清理本地
        return


__all__ = [
    "ApiError",
    "ErrorAction",
    "map_error_to_action",
    "handle_error_action",
    "lockout_message",
    "INVALID_CREDENTIALS_MESSAGE",
    "BACKEND_UNAVAILABLE_MESSAGE",
    "REGISTER_OFFLINE_MESSAGE",
    "INVALID_CODE_FORMAT_MESSAGE",
    "EMPTY_RECOVERY_CODE_MESSAGE",
    "INVALID_CODE_MESSAGE",
    "INVALID_RECOVERY_CODE_MESSAGE",
    "NO_CHALLENGE_MESSAGE",
    "NOT_AUTHENTICATED_MESSAGE",
    "VERIFY_NETWORK_MESSAGE",
]
