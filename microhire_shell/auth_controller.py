"""壳层侧 Auth 控制器（认证状态机）。

职责：
- 持有唯一的 Session，并且是唯一能写 CredentialStore、设置 auth_source、清除 token 的组件；
- 启动水合、登录（远端 → 本地离线数据集）、注册、退出、二次验证收尾；
- 每次状态变化通过事件总线发出 sessionStatus，ChannelBinding 据此连接/断开实时通道。

所有网络/传输错误都在这里转换成 AuthOutcome，不以异常形式抛给 UI 调用方。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from .credential_store import CredentialStore, StoredCredentials
from .domain import (
    AuthOutcome,
    AuthSource,
    AuthStatus,
    ChallengeDescriptor,
    FailureReason,
    Role,
    Session,
    UserRecord,
)
from .error_handling import (
    ApiError,
    BACKEND_UNAVAILABLE_MESSAGE,
    INVALID_CREDENTIALS_MESSAGE,
    NO_CHALLENGE_MESSAGE,
    NOT_AUTHENTICATED_MESSAGE,
    REGISTER_OFFLINE_MESSAGE,
)
from .event_bus import SESSION_STATUS, EventBus
from .identity_providers import FallbackProvider, IdentityProvider, RemoteProvider, ResolutionKind
from .logout_handler import LogoutHandler
from .reachability import ReachabilityProbe
from .second_factor import SecondFactorVerifier, StepUpResult


logger = logging.getLogger(__name__)


class AuthController:
    def __init__(
        self,
        api: Any,
        store: CredentialStore,
        probe: ReachabilityProbe,
        verifier: SecondFactorVerifier,
        bus: EventBus,
        *,
        broadcast_status: Callable[[str], None],
        remote: Optional[RemoteProvider] = None,
        fallback: Optional[FallbackProvider] = None,
    ) -> None:
        self._api = api
        self._store = store
        self._probe = probe
        self._verifier = verifier
        self._bus = bus
        self._broadcast = broadcast_status
        self._remote = remote or RemoteProvider(api)
        self._fallback = fallback or FallbackProvider()
        self._session = Session()
        self.logout_handler = LogoutHandler(
            api_logout=api.logout,
            clear_local=self._purge,
            broadcast_status=broadcast_status,
        )

    # --- Read side ---
    @property
    def session(self) -> Session:
        return self._session.snapshot()

    @property
    def user(self) -> Optional[UserRecord]:
        return self._session.user

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    def has_role(self, role: Role) -> bool:
        return self._session.user is not None and self._session.user.role == role

    @property
    def is_student(self) -> bool:
        return self.has_role(Role.STUDENT)

    @property
    def is_business(self) -> bool:
        return self.has_role(Role.BUSINESS)

    @property
    def is_admin(self) -> bool:
        return self.has_role(Role.ADMIN)

    def channel_token(self) -> Optional[str]:
        """实时通道此刻可用的 token；会话已清除或凭据已被清除时返回 None（失败即关闭）。

        本地（离线数据集）token 服务端不认，永远不交给通道。
        """

        s = self._session
        if s.status != AuthStatus.AUTHENTICATED or not s.backend_reachable or not s.token:
            return None
        if s.auth_source != AuthSource.REMOTE:
            return None
        try:
            stored = self._store.load().token
        except ValueError:
            return None
        return s.token if stored == s.token else None

    # --- Startup ---
    def startup(self) -> Session:
        """探测可达性并尝试从本地凭据恢复会话。"""

        reachable = self._probe.check()
        try:
            creds = self._store.load()
        except ValueError as exc:
            logger.warning("discarding unreadable credentials: %s", exc)
            self._store.clear()
            creds = StoredCredentials()

        if not creds.token:
            self._transition(status=AuthStatus.UNAUTHENTICATED, backend_reachable=reachable)
            return self.session

        self._transition(status=AuthStatus.AUTHENTICATING, backend_reachable=reachable)

        if reachable:
            try:
                user = self._remote.current_user(creds.token)
            except (ApiError, requests.RequestException, ValueError) as exc:
                logger.warning("session hydration failed, purging credentials: %s", exc)
                self._purge()
                return self.session
            self._transition(
                status=AuthStatus.AUTHENTICATED,
                user=user,
                token=creds.token,
                auth_source=AuthSource.REMOTE,
            )
            self._broadcast("active")
            return self.session

        if creds.fallback_user is not None:
            try:
                user = UserRecord.from_dict(creds.fallback_user)
            except ValueError as exc:
                logger.warning("cached fallback identity is unusable, purging: %s", exc)
                self._purge()
                return self.session
            self._transition(
                status=AuthStatus.AUTHENTICATED,
                user=user,
                token=creds.token,
                auth_source=AuthSource.LOCAL,
            )
            self._broadcast("active")
            return self.session

        # 远端 token 但后端不可达：保留凭据，等可达后 recheck_backend() 再水合
        logger.info("backend unreachable and no cached fallback identity; staying signed out")
        self._transition(status=AuthStatus.UNAUTHENTICATED)
        return self.session

    def recheck_backend(self) -> bool:
        """重新探测可达性。失去可达性只更新标志（通道随之断开）；恢复可达时重新水合。"""

        reachable = self._probe.check()
        if reachable == self._session.backend_reachable:
            return reachable
        if not reachable:
            self._transition(backend_reachable=False)
            self._broadcast("backend_unreachable")
            return False
        if self._session.auth_source == AuthSource.REMOTE and self._session.is_authenticated:
            self._transition(backend_reachable=True)
        elif self._session.status in (AuthStatus.AUTHENTICATING, AuthStatus.AWAITING_SECOND_FACTOR):
            self._transition(backend_reachable=True)
        else:
            logger.info("identity service reachable again; re-hydrating session")
            self.startup()
        return True

    # --- Login / register ---
    def _providers(self, reachable: bool) -> List[IdentityProvider]:
        return [self._remote, self._fallback] if reachable else [self._fallback]

    def login(self, email: str, password: str) -> AuthOutcome:
        if self._session.token is not None or self._verifier.active:
            self._purge()
        reachable = self._session.backend_reachable
        self._transition(status=AuthStatus.AUTHENTICATING)

        for provider in self._providers(reachable):
            resolution = provider.login(email, password)
            if resolution.kind == ResolutionKind.AUTHENTICATED:
                assert resolution.token is not None and resolution.user is not None
                return self._complete(resolution.token, resolution.user, provider.source)
            if resolution.kind == ResolutionKind.CHALLENGE:
                self._verifier.start(email, resolution.challenge_token)
                self._transition(status=AuthStatus.AWAITING_SECOND_FACTOR)
                self._broadcast("second_factor_required")
                return AuthOutcome.challenge_required(ChallengeDescriptor(email, resolution.challenge_token))
            if resolution.kind == ResolutionKind.UNAVAILABLE:
                # 本次调用观测到远端不可达，后续本地判定以此为准
                self._transition(backend_reachable=False)
            logger.info("%s identity provider did not authenticate: %s", provider.source.value, resolution.kind.value)

        self._transition(status=AuthStatus.UNAUTHENTICATED)
        return AuthOutcome.failure(INVALID_CREDENTIALS_MESSAGE, FailureReason.INVALID_CREDENTIALS)

    def register(self, payload: Dict[str, Any]) -> AuthOutcome:
        if not self._session.backend_reachable:
            return AuthOutcome.failure(REGISTER_OFFLINE_MESSAGE, FailureReason.BACKEND_UNAVAILABLE)
        if self._session.token is not None or self._verifier.active:
            self._purge()
        self._transition(status=AuthStatus.AUTHENTICATING)

        try:
            data = self._api.register(payload)
        except ApiError as exc:
            self._transition(status=AuthStatus.UNAUTHENTICATED)
            return AuthOutcome.failure(exc.message or "Registration failed", FailureReason.REJECTED)
        except requests.RequestException as exc:
            logger.warning("registration failed, backend unreachable: %s", exc)
            self._transition(status=AuthStatus.UNAUTHENTICATED, backend_reachable=False)
            return AuthOutcome.failure(BACKEND_UNAVAILABLE_MESSAGE, FailureReason.BACKEND_UNAVAILABLE)

        if not data.get("accessToken"):
            # 需要邮箱验证等流程，注册成功但暂不登录
            self._transition(status=AuthStatus.UNAUTHENTICATED)
            self._broadcast("registered")
            return AuthOutcome.success()

        resolution = self._remote.resolve_token_payload(data)
        if resolution.kind != ResolutionKind.AUTHENTICATED:
            self._transition(status=AuthStatus.UNAUTHENTICATED)
            return AuthOutcome.failure(resolution.message or "Registration failed", FailureReason.REJECTED)
        assert resolution.token is not None and resolution.user is not None
        return self._complete(resolution.token, resolution.user, AuthSource.REMOTE)

    # --- Second factor ---
    def verify_second_factor(self, code: str) -> AuthOutcome:
        if self._session.status != AuthStatus.AWAITING_SECOND_FACTOR or not self._verifier.active:
            return AuthOutcome.failure(NO_CHALLENGE_MESSAGE, FailureReason.NO_CHALLENGE)
        return self._finish_step_up(self._verifier.submit_code(code))

    def verify_recovery_code(self, code: str) -> AuthOutcome:
        if self._session.status != AuthStatus.AWAITING_SECOND_FACTOR or not self._verifier.active:
            return AuthOutcome.failure(NO_CHALLENGE_MESSAGE, FailureReason.NO_CHALLENGE)
        return self._finish_step_up(self._verifier.submit_recovery_code(code))

    def cancel_second_factor(self) -> None:
        self._verifier.cancel()
        if self._session.status == AuthStatus.AWAITING_SECOND_FACTOR:
            self._transition(status=AuthStatus.UNAUTHENTICATED)
            self._broadcast("none")

    def _finish_step_up(self, result: StepUpResult) -> AuthOutcome:
        if not result.ok:
            assert result.error is not None and result.reason is not None
            return AuthOutcome.failure(result.error, result.reason, retry_after_seconds=result.retry_after_seconds)

        assert result.payload is not None
        self._verifier.cancel()
        resolution = self._remote.resolve_token_payload(result.payload)
        if resolution.kind != ResolutionKind.AUTHENTICATED:
            self._purge()
            return AuthOutcome.failure(resolution.message or "Verification failed", FailureReason.REJECTED)
        assert resolution.token is not None and resolution.user is not None
        return self._complete(resolution.token, resolution.user, AuthSource.REMOTE)

    # --- Logout / user update ---
    def logout(self) -> None:
        s = self._session
        token = s.token if s.auth_source == AuthSource.REMOTE and s.backend_reachable else None
        self.logout_handler.logout(token)

    def handle_unauthorized(self) -> None:
        """已认证的远端调用返回 401：会话不可恢复，强制清理。"""

        if self._session.token is not None:
            logger.warning("remote session rejected, forcing logout")
        self._purge()

    def update_user(self, partial: Dict[str, Any]) -> AuthOutcome:
        """合并资料更新；合并结果非法或落盘失败时内存中的用户保持不变。"""

        user = self._session.user
        if user is None:
            return AuthOutcome.failure(NOT_AUTHENTICATED_MESSAGE, FailureReason.NOT_AUTHENTICATED)
        try:
            merged = user.merged(partial)
        except ValueError as exc:
            logger.warning("rejecting user update: %s", exc)
            return AuthOutcome.failure(str(exc), FailureReason.REJECTED)
        if self._session.auth_source == AuthSource.LOCAL:
            assert self._session.token is not None
            try:
                self._store.save(self._session.token, merged.to_dict())
            except OSError as exc:
                logger.warning("could not persist updated fallback identity: %s", exc)
                return AuthOutcome.failure("Unable to persist session", FailureReason.STORAGE)
        self._transition(user=merged)
        return AuthOutcome.success(merged)

    # --- Password recovery ---
    def forgot_password(self, email: str) -> AuthOutcome:
        return self._remote_call(lambda: self._api.forgot_password(email), "Failed to send reset link")

    def reset_password(self, reset_token: str, password: str) -> AuthOutcome:
        return self._remote_call(lambda: self._api.reset_password(reset_token, password), "Password reset failed")

    def _remote_call(self, call: Callable[[], Any], default_error: str) -> AuthOutcome:
        if not self._session.backend_reachable:
            return AuthOutcome.failure(BACKEND_UNAVAILABLE_MESSAGE, FailureReason.BACKEND_UNAVAILABLE)
        try:
            call()
        except ApiError as exc:
            return AuthOutcome.failure(exc.message or default_error, FailureReason.REJECTED)
        except requests.RequestException as exc:
            logger.warning("%s: %s", default_error, exc)
            return AuthOutcome.failure(BACKEND_UNAVAILABLE_MESSAGE, FailureReason.BACKEND_UNAVAILABLE)
        return AuthOutcome.success()

    # --- Internal ---
    def _complete(self, token: str, user: UserRecord, source: AuthSource) -> AuthOutcome:
        # 先落盘再迁移：通道连接总能在凭据中读到这个 token
        fallback_user = user.to_dict() if source == AuthSource.LOCAL else None
        try:
            self._store.save(token, fallback_user)
        except OSError:
            self._transition(status=AuthStatus.UNAUTHENTICATED)
            return AuthOutcome.failure("Unable to persist session", FailureReason.STORAGE)
        self._transition(status=AuthStatus.AUTHENTICATED, user=user, token=token, auth_source=source)
        self._broadcast("active")
        return AuthOutcome.success(user)

    def _purge(self) -> None:
        self._verifier.cancel()
        self._store.clear()
        self._transition(
            status=AuthStatus.UNAUTHENTICATED,
            user=None,
            token=None,
            auth_source=AuthSource.NONE,
        )

    def _transition(self, **changes: Any) -> None:
        before = self._session.snapshot()
        for key, value in changes.items():
            setattr(self._session, key, value)
        if (self._session.user is None) != (self._session.token is None):
            raise RuntimeError("session user/token out of step")
        if self._session == before:
            return
        snapshot = self._session.snapshot()
        logger.debug("session %s -> %s (%s)", before.status.value, snapshot.status.value, snapshot.auth_source.value)
        self._bus.emit(SESSION_STATUS, {"status": snapshot.status.value, "session": snapshot})


__all__ = ["AuthController"]
