"""身份服务可达性探测与定时复查。

ReachabilityProbe 只做一次 GET /health；ReachabilityMonitor 沿用刷新调度的 tick 模型，
由宿主循环驱动，具体线程/定时器集成由调用方负责。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import requests

from .domain import now_utc
from .error_handling import ApiError


logger = logging.getLogger(__name__)


class ReachabilityProbe:
    def __init__(self, health: Callable[[], object]) -> None:
        """health: 执行一次健康检查请求，异常即视为不可达。"""

        self._health = health

    def check(self) -> bool:
        try:
            self._health()
        except (requests.RequestException, ApiError) as exc:
            logger.warning("identity service unreachable: %s", exc)
            return False
        return True


@dataclass
class MonitorState:
    last_checked_at: datetime
    next_scheduled_at: datetime


class ReachabilityMonitor:
    def __init__(self, on_check: Callable[[], object], interval: timedelta = timedelta(seconds=30)) -> None:
        self._on_check = on_check
        self._interval = interval
        self._state: Optional[MonitorState] = None

    def start(self, now: Optional[datetime] = None) -> None:
        now = now or now_utc()
        self._state = MonitorState(last_checked_at=now, next_scheduled_at=now + self._interval)

    def stop(self) -> None:
        self._state = None

    @property
    def next_scheduled_at(self) -> Optional[datetime]:
        return self._state.next_scheduled_at if self._state else None

    def tick(self, now: Optional[datetime] = None) -> bool:
        """到期则执行一次复查并排下一次；返回本次是否执行。"""

        if self._state is None:
            return False
        now = now or now_utc()
        if now < self._state.next_scheduled_at:
            return False
        self._on_check()
        self._state.last_checked_at = now
        self._state.next_scheduled_at = now + self._interval
        return True


__all__ = ["ReachabilityProbe", "ReachabilityMonitor"]
