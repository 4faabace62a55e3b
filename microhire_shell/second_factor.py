"""二次验证（Step-Up）协议。

登录返回 twoFARequired 后由 AuthController 调用 start() 开启一次挑战：
- 动态码与恢复码两条路径共享同一个 LockoutState；
- 每次提交都先同步读取 locked_until，锁定期内不发请求，直接返回剩余秒数；
- 失败计数递增后 attempts >= MAX_ATTEMPTS 即锁定 LOCKOUT_DURATION；
- 挑战结束（成功/取消/新登录）时丢弃挑战与锁定状态。
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import requests

from .domain import FailureReason, LockoutState, now_utc
from .error_handling import (
    ApiError,
    EMPTY_RECOVERY_CODE_MESSAGE,
    INVALID_CODE_FORMAT_MESSAGE,
    INVALID_CODE_MESSAGE,
    INVALID_RECOVERY_CODE_MESSAGE,
    NO_CHALLENGE_MESSAGE,
    VERIFY_NETWORK_MESSAGE,
    lockout_message,
)


logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
LOCKOUT_DURATION = timedelta(minutes=5)
CODE_PATTERN = re.compile(r"[0-9]{6}")


@dataclass
class Challenge:
    email: str
    challenge_token: Optional[str]
    lockout: LockoutState = field(default_factory=LockoutState)


@dataclass(frozen=True)
class StepUpResult:
    ok: bool
    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    reason: Optional[FailureReason] = None
    retry_after_seconds: Optional[int] = None


class SecondFactorVerifier:
    def __init__(self, api: Any, now_provider: Callable[[], datetime] = now_utc) -> None:
        self._api = api
        self.now = now_provider
        self._challenge: Optional[Challenge] = None

    @property
    def challenge(self) -> Optional[Challenge]:
        return self._challenge

    @property
    def active(self) -> bool:
        return self._challenge is not None

    def start(self, email: str, challenge_token: Optional[str]) -> Challenge:
        # 新挑战总是从零计数
        self._challenge = Challenge(email=email, challenge_token=challenge_token)
        return self._challenge

    def cancel(self) -> None:
        self._challenge = None

    def submit_code(self, code: str) -> StepUpResult:
        blocked = self._precheck()
        if blocked is not None:
            return blocked
        if not isinstance(code, str) or not CODE_PATTERN.fullmatch(code):
            return StepUpResult(ok=False, error=INVALID_CODE_FORMAT_MESSAGE, reason=FailureReason.INVALID_CODE)
        return self._verify(self._api.verify_login, code, INVALID_CODE_MESSAGE)

    def submit_recovery_code(self, code: str) -> StepUpResult:
        blocked = self._precheck()
        if blocked is not None:
            return blocked
        code = code.strip() if isinstance(code, str) else ""
        if not code:
            return StepUpResult(ok=False, error=EMPTY_RECOVERY_CODE_MESSAGE, reason=FailureReason.INVALID_CODE)
        return self._verify(self._api.verify_recovery_code, code, INVALID_RECOVERY_CODE_MESSAGE)

    # --- Internal ---
    def _precheck(self) -> Optional[StepUpResult]:
        if self._challenge is None:
            return StepUpResult(ok=False, error=NO_CHALLENGE_MESSAGE, reason=FailureReason.NO_CHALLENGE)
        now = self.now()
        lockout = self._challenge.lockout
        if lockout.is_locked(now):
            assert lockout.locked_until is not None
            return self._locked_result(lockout.locked_until, now)
        return None

    def _locked_result(self, locked_until: datetime, now: datetime) -> StepUpResult:
        remaining = max(1, math.ceil((locked_until - now).total_seconds()))
        return StepUpResult(
            ok=False,
            error=lockout_message(remaining),
            reason=FailureReason.LOCKED_OUT,
            retry_after_seconds=remaining,
        )

    def _verify(self, call: Callable[..., Dict[str, Any]], code: str, invalid_message: str) -> StepUpResult:
        challenge = self._challenge
        assert challenge is not None
        try:
            data = call(challenge.email, code, challenge.challenge_token)
        except ApiError as exc:
            logger.info("second factor rejected for %s: %s", challenge.email, exc.message)
            return self._record_failure(invalid_message)
        except requests.RequestException as exc:
            # 网络错误不是一次判定失败，不计入尝试次数
            logger.warning("second factor verification unavailable: %s", exc)
            return StepUpResult(ok=False, error=VERIFY_NETWORK_MESSAGE, reason=FailureReason.NETWORK)

        if not data.get("accessToken"):
            return self._record_failure(invalid_message)
        return StepUpResult(ok=True, payload=data)

    def _record_failure(self, invalid_message: str) -> StepUpResult:
        challenge = self._challenge
        assert challenge is not None
        now = self.now()
        lockout = challenge.lockout
        lockout.attempts += 1
        if lockout.attempts >= MAX_ATTEMPTS:
            lockout.locked_until = now + LOCKOUT_DURATION
            logger.warning("second factor locked for %s after %d attempts", challenge.email, lockout.attempts)
            return self._locked_result(lockout.locked_until, now)
        return StepUpResult(ok=False, error=invalid_message, reason=FailureReason.INVALID_CODE)


__all__ = [
    "SecondFactorVerifier",
    "Challenge",
    "StepUpResult",
    "MAX_ATTEMPTS",
    "LOCKOUT_DURATION",
]
