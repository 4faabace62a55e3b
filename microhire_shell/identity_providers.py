"""身份来源：远端身份服务与本地离线数据集。

AuthController 每次登录先按可达性选出 provider 链（可达：Remote → Fallback；
不可达：仅 Fallback），依次尝试，第一条给出 AUTHENTICATED/CHALLENGE 的结果生效。
provider 只负责解析，不写凭据、不改会话。
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import requests

from .domain import AuthSource, UserRecord
from .error_handling import ApiError
from .fallback_identities import match_credentials


logger = logging.getLogger(__name__)


class ResolutionKind(str, Enum):
    AUTHENTICATED = "authenticated"
    CHALLENGE = "challenge"
    REJECTED = "rejected"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Resolution:
    kind: ResolutionKind
    token: Optional[str] = None
    user: Optional[UserRecord] = None
    challenge_token: Optional[str] = None
    message: Optional[str] = None


class IdentityProvider:
    source: AuthSource = AuthSource.NONE

    def login(self, email: str, password: str) -> Resolution:
        raise NotImplementedError


class RemoteProvider(IdentityProvider):
    source = AuthSource.REMOTE

    def __init__(self, api: Any) -> None:
        self._api = api

    def login(self, email: str, password: str) -> Resolution:
        try:
            data = self._api.login(email, password)
        except ApiError as exc:
            return Resolution(ResolutionKind.REJECTED, message=exc.message)
        except requests.RequestException as exc:
            logger.warning("remote login failed: %s", exc)
            return Resolution(ResolutionKind.UNAVAILABLE, message=str(exc))

        if data.get("twoFARequired"):
            return Resolution(ResolutionKind.CHALLENGE, challenge_token=data.get("tempToken"))
        return self.resolve_token_payload(data)

    def resolve_token_payload(self, data: Dict[str, Any]) -> Resolution:
        token = data.get("accessToken")
        if not token:
            return Resolution(ResolutionKind.REJECTED, message="response carried no access token")
        user_data = data.get("user")
        if user_data is None:
            # 二次验证接口不返回用户信息，需要再取一次 /auth/me
            try:
                user_data = self._api.current_user(token)
            except (ApiError, requests.RequestException) as exc:
                logger.warning("failed to fetch user after token issue: %s", exc)
                return Resolution(ResolutionKind.UNAVAILABLE, message=str(exc))
        try:
            user = UserRecord.from_dict(user_data)
        except ValueError as exc:
            logger.warning("malformed user record from identity service: %s", exc)
            return Resolution(ResolutionKind.REJECTED, message=str(exc))
        return Resolution(ResolutionKind.AUTHENTICATED, token=token, user=user)

    def current_user(self, token: str) -> UserRecord:
        """启动水合用；失败原样抛出，由调用方清除凭据。"""

        return UserRecord.from_dict(self._api.current_user(token))


def local_token(user_id: str) -> str:
    return f"local.{user_id}.{secrets.token_hex(8)}"


class FallbackProvider(IdentityProvider):
    source = AuthSource.LOCAL

    def __init__(
        self,
        matcher: Callable[[str, str], Optional[Dict[str, Any]]] = match_credentials,
        token_factory: Callable[[str], str] = local_token,
    ) -> None:
        self._match = matcher
        self._token_factory = token_factory

    def login(self, email: str, password: str) -> Resolution:
        record = self._match(email, password)
        if record is None:
            return Resolution(ResolutionKind.REJECTED)
        user = UserRecord.from_dict(record)
        return Resolution(ResolutionKind.AUTHENTICATED, token=self._token_factory(user.id), user=user)


__all__ = [
    "IdentityProvider",
    "RemoteProvider",
    "FallbackProvider",
    "Resolution",
    "ResolutionKind",
    "local_token",
]
