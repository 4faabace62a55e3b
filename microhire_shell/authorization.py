"""角色授权策略。

离线（local）会话默认与远端会话同等参与角色判定，这是测试模式的既定行为；
需要服务端签发身份的调用方传 require_remote=True，或构造时关闭 trust_local_sessions。
"""

from __future__ import annotations

from dataclasses import dataclass

from .domain import AuthSource, Role, Session


@dataclass(frozen=True)
class AuthorizationPolicy:
    trust_local_sessions: bool = True

    def allows(self, session: Session, *roles: Role, require_remote: bool = False) -> bool:
        if not session.is_authenticated or session.user is None:
            return False
        if session.auth_source == AuthSource.LOCAL and (require_remote or not self.trust_local_sessions):
            return False
        return not roles or session.user.role in roles


__all__ = ["AuthorizationPolicy"]
