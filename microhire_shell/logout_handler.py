from __future__ import annotations

import logging
from typing import Callable, Optional


class LogoutHandler:
    """壳层退出登录处理逻辑。

    通过依赖注入接收后端退出调用、本地会话清除和状态广播函数；
    本地清除由 AuthController 提供（清凭据 + 清会话 + 迁移到未认证，通道随之断开）。
    """

    def __init__(
        self,
        api_logout: Callable[[str], None],
        clear_local: Callable[[], None],
        broadcast_status: Callable[[str], None],
    ) -> None:
        self._api_logout = api_logout
        self._clear = clear_local
        self._broadcast = broadcast_status
        self._logger = logging.getLogger(__name__)

    def logout(self, token: Optional[str] = None) -> None:
        """处理主动退出：先同步清理本地并广播 none，再用退出前的 token 尽力通知后端。"""

        self._clear()
        self._broadcast("none")
        if not token:
            return
        try:
            self._api_logout(token)
        except Exception as exc:  # noqa: BLE001
            # 后端退出接口失败不影响本地结果，本地会话已清除。
            self._logger.warning("API logout failed after local cleanup: %s", exc)


__all__ = ["LogoutHandler"]
