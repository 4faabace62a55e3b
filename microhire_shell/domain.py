"""会话领域模型。

本模块只承载数据结构与少量纯函数，不做网络/文件 IO：
- Session / UserRecord：认证结果与身份记录；
- LockoutState：二次验证的尝试计数与锁定；
- ChannelConnection / Notification / ConversationMessage：实时通道侧的数据；
- AuthOutcome：对 UI 调用方暴露的统一结果（success / challenge_required / failure）。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


UTC = timezone.utc


def now_utc() -> datetime:
    return datetime.now(UTC)


class AuthStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AWAITING_SECOND_FACTOR = "awaiting_second_factor"
    AUTHENTICATED = "authenticated"


class AuthSource(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"
    NONE = "none"


class Role(str, Enum):
    STUDENT = "student"
    BUSINESS = "business"
    ADMIN = "admin"


# UserRecord 中单独建模的字段，其余字段原样保留在 attributes 中
_CORE_FIELDS = ("id", "_id", "email", "role", "fullName")


@dataclass(frozen=True)
class UserRecord:
    id: str
    email: str
    role: Role
    full_name: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserRecord":
        """从服务端/本地缓存的 dict 构造；角色不在封闭集合内视为数据损坏。"""

        if not isinstance(data, dict):
            raise ValueError("user record must be a mapping")
        user_id = data.get("id") or data.get("_id")
        if not user_id:
            raise ValueError("user record missing id")
        try:
            role = Role(data.get("role"))
        except ValueError as exc:
            raise ValueError(f"unknown role: {data.get('role')!r}") from exc
        attributes = {k: v for k, v in data.items() if k not in _CORE_FIELDS}
        return cls(
            id=str(user_id),
            email=str(data.get("email", "")),
            role=role,
            full_name=str(data.get("fullName", "")),
            attributes=attributes,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.attributes)
        payload.update(
            {
                "id": self.id,
                "email": self.email,
                "role": self.role.value,
                "fullName": self.full_name,
            }
        )
        return payload

    def merged(self, partial: Dict[str, Any]) -> "UserRecord":
        """浅合并：只覆盖 partial 中出现的键，未出现的字段保持不变。"""

        data = self.to_dict()
        data.update(partial)
        return UserRecord.from_dict(data)


@dataclass
class Session:
    user: Optional[UserRecord] = None
    token: Optional[str] = None
    auth_source: AuthSource = AuthSource.NONE
    backend_reachable: bool = False
    status: AuthStatus = AuthStatus.UNAUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        return self.status == AuthStatus.AUTHENTICATED and self.user is not None

    def snapshot(self) -> "Session":
        return replace(self)


@dataclass
class LockoutState:
    attempts: int = 0
    locked_until: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and now < self.locked_until


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERRORED = "errored"


@dataclass
class ChannelConnection:
    state: ChannelState = ChannelState.DISCONNECTED
    last_error: Optional[str] = None


@dataclass
class Notification:
    id: str
    title: str = ""
    message: str = ""
    read: bool = False
    created_at: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Notification":
        return cls(
            id=str(payload.get("id") or payload.get("_id") or ""),
            title=str(payload.get("title", "")),
            message=str(payload.get("message", "")),
            read=bool(payload.get("read", False)),
            created_at=payload.get("createdAt"),
        )


@dataclass(frozen=True)
class ConversationMessage:
    id: str
    sender_id: str
    content: str
    created_at: Optional[str] = None
    conversation_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ConversationMessage":
        return cls(
            id=str(payload.get("id") or payload.get("_id") or ""),
            sender_id=str(payload.get("senderId", "")),
            content=str(payload.get("content", "")),
            created_at=payload.get("createdAt"),
            conversation_id=payload.get("conversationId"),
        )


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    CHALLENGE_REQUIRED = "challenge_required"
    FAILURE = "failure"


class FailureReason(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    INVALID_CODE = "invalid_code"
    LOCKED_OUT = "locked_out"
    NO_CHALLENGE = "no_challenge"
    NOT_AUTHENTICATED = "not_authenticated"
    REJECTED = "rejected"
    NETWORK = "network"
    STORAGE = "storage"


@dataclass(frozen=True)
class ChallengeDescriptor:
    email: str
    challenge_token: Optional[str]


@dataclass(frozen=True)
class AuthOutcome:
    kind: OutcomeKind
    user: Optional[UserRecord] = None
    challenge: Optional[ChallengeDescriptor] = None
    error: Optional[str] = None
    reason: Optional[FailureReason] = None
    retry_after_seconds: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @classmethod
    def success(cls, user: Optional[UserRecord] = None) -> "AuthOutcome":
        return cls(kind=OutcomeKind.SUCCESS, user=user)

    @classmethod
    def challenge_required(cls, challenge: ChallengeDescriptor) -> "AuthOutcome":
        return cls(kind=OutcomeKind.CHALLENGE_REQUIRED, challenge=challenge)

    @classmethod
    def failure(
        cls,
        error: str,
        reason: FailureReason,
        *,
        retry_after_seconds: Optional[int] = None,
    ) -> "AuthOutcome":
        return cls(
            kind=OutcomeKind.FAILURE,
            error=error,
            reason=reason,
            retry_after_seconds=retry_after_seconds,
        )


__all__ = [
    "UTC",
    "now_utc",
    "AuthStatus",
    "AuthSource",
    "Role",
    "UserRecord",
    "Session",
    "LockoutState",
    "ChannelState",
    "ChannelConnection",
    "Notification",
    "ConversationMessage",
    "OutcomeKind",
    "FailureReason",
    "ChallengeDescriptor",
    "AuthOutcome",
]
