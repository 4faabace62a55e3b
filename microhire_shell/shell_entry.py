"""壳层入口。

组合 CredentialStore + HttpClient + ReachabilityProbe + SecondFactorVerifier + AuthController
+ ChannelManager + ChannelBinding + ReachabilityMonitor，提供启动/登录/二次验证/退出流程。
所有可变单例状态都由 ShellApp 持有并注入，不使用模块级全局。

使用方式：在集成测试或脚本中直接调用 ShellApp 的方法；宿主循环定期调用 pump()。
"""

from __future__ import annotations

import argparse
import getpass
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .auth_controller import AuthController
from .authorization import AuthorizationPolicy
from .channel_binding import ChannelBinding
from .channel_manager import ChannelManager
from .channel_transport import ChannelTransport, socketio_transport_factory
from .client_config import ClientConfig, load_config
from .credential_store import CredentialStore, default_store_path
from .domain import AuthOutcome, Role, Session, now_utc
from .event_bus import EventBus
from .http_client import HttpClient
from .reachability import ReachabilityMonitor, ReachabilityProbe
from .second_factor import SecondFactorVerifier


class ShellApp:
    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        store: Optional[CredentialStore] = None,
        http_client: Any = None,
        transport_factory: Optional[Callable[[], ChannelTransport]] = None,
        now_provider: Callable[[], datetime] = now_utc,
        policy: Optional[AuthorizationPolicy] = None,
    ) -> None:
        self.config = config or load_config()
        self.events: List[Dict[str, Any]] = []  # 用于测试观测广播
        self.bus = EventBus()
        self.policy = policy or AuthorizationPolicy()

        self.store = store or CredentialStore(default_store_path(self.config.api_url, self.config.home))

        self.http = http_client or HttpClient(
            base_url=self.config.api_url,
            on_logout=lambda: self.auth.handle_unauthorized(),
            on_broadcast=self._broadcast,
            timeout=self.config.request_timeout,
        )

        self.probe = ReachabilityProbe(self.http.health)
        self.verifier = SecondFactorVerifier(self.http, now_provider=now_provider)

        self.auth = AuthController(
            api=self.http,
            store=self.store,
            probe=self.probe,
            verifier=self.verifier,
            bus=self.bus,
            broadcast_status=self._broadcast,
        )

        assert self.config.socket_url is not None
        self.channel = ChannelManager(
            self.config.socket_url,
            transport_factory
            or socketio_transport_factory(
                reconnection_attempts=self.config.reconnection_attempts,
                reconnection_delay=self.config.reconnection_delay,
                timeout=self.config.socket_timeout,
            ),
            token_provider=self.auth.channel_token,
            bus=self.bus,
        )
        self.binding = ChannelBinding(self.channel).attach(self.bus)

        self.monitor = ReachabilityMonitor(
            on_check=self.auth.recheck_backend,
            interval=timedelta(seconds=self.config.health_check_interval),
        )
        self._now = now_provider

    # --- Public API ---
    @property
    def session(self) -> Session:
        return self.auth.session

    def startup_flow(self) -> Session:
        session = self.auth.startup()
        self.monitor.start(self._now())
        return session

    def login(self, email: str, password: str) -> AuthOutcome:
        return self.auth.login(email, password)

    def verify_second_factor(self, code: str) -> AuthOutcome:
        return self.auth.verify_second_factor(code)

    def verify_recovery_code(self, code: str) -> AuthOutcome:
        return self.auth.verify_recovery_code(code)

    def cancel_second_factor(self) -> None:
        self.auth.cancel_second_factor()

    def register(self, payload: Dict[str, Any]) -> AuthOutcome:
        return self.auth.register(payload)

    def logout(self) -> None:
        self.auth.logout()

    def update_user(self, partial: Dict[str, Any]) -> AuthOutcome:
        return self.auth.update_user(partial)

    def allows(self, *roles: Role, require_remote: bool = False) -> bool:
        return self.policy.allows(self.auth.session, *roles, require_remote=require_remote)

    def retry_channel(self) -> bool:
        return self.channel.retry()

    def pump(self, now: Optional[datetime] = None, timeout: Optional[float] = None) -> int:
        """宿主循环调用：应用已到达的通道事件，并按需复查后端可达性。"""

        handled = self.channel.dispatch_pending(timeout=timeout)
        self.monitor.tick(now or self._now())
        return handled

    def shutdown(self) -> None:
        self.monitor.stop()
        self.channel.disconnect()

    # --- Helpers ---
    def _broadcast(self, status: str) -> None:
        self.events.append({"status": status})


def _print_outcome(outcome: AuthOutcome) -> None:
    if outcome.ok:
        name = outcome.user.full_name if outcome.user else ""
        print(f"signed in {name}".rstrip())
    elif outcome.challenge is not None:
        print(f"second factor required for {outcome.challenge.email}")
    else:
        print(f"failed: {outcome.error}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="MicroHire client session shell")
    parser.add_argument("--config", default="", help="path to microhire-client.json")
    parser.add_argument("--api-url", default=None)
    parser.add_argument("--email", default=None)
    parser.add_argument("--logout", action="store_true", help="sign out and purge stored credentials")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = load_config(args.config, api_url=args.api_url)
    app = ShellApp(config)

    session = app.startup_flow()
    print(f"backend reachable: {session.backend_reachable}; status: {session.status.value} ({session.auth_source.value})")

    if args.logout:
        app.logout()
        print("signed out")
        return 0

    if args.email:
        outcome = app.login(args.email, getpass.getpass("password: "))
        _print_outcome(outcome)
        while not outcome.ok and app.verifier.active:
            if outcome.retry_after_seconds:
                return 1
            code = input("6-digit code (or 'r:<recovery code>', empty to cancel): ").strip()
            if not code:
                app.cancel_second_factor()
                print("cancelled")
                return 1
            if code.startswith("r:"):
                outcome = app.verify_recovery_code(code[2:])
            else:
                outcome = app.verify_second_factor(code)
            _print_outcome(outcome)
        if not outcome.ok:
            return 1

    app.pump(timeout=1.0)
    print(f"channel: {app.channel.state.value}")
    app.shutdown()
    return 0


__all__ = ["ShellApp", "main"]
