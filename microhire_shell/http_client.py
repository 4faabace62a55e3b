"""身份服务 HTTP 调用封装（壳层侧）。

功能：
- 统一基地址、超时、Bearer 头；
- 解析统一信封 {success, data, message}，失败时抛 ApiError；
- 对已认证请求的 401 等错误码调用 error_handling 映射动作（强制登出/广播），
  其余由上层决定如何转换成结果对象。
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import requests

from .error_handling import ApiError, handle_error_action, map_error_to_action


class HttpClient:
    def __init__(
        self,
        base_url: str,
        *,
        on_logout: Callable[[], None],
        on_broadcast: Callable[[str], None],
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.on_logout = on_logout
        self.on_broadcast = on_broadcast
        self._session = session or requests.Session()

    def _headers(self, token: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        *,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        # 本地开发服务器在短连接下偶发 reset，做一次轻量重试。
        try:
            resp = self._session.request(method, url, headers=self._headers(token), json=json_body, timeout=self.timeout)
        except requests.exceptions.ConnectionError:
            resp = self._session.request(method, url, headers=self._headers(token), json=json_body, timeout=self.timeout)

        body: Dict[str, Any] = {}
        if resp.content:
            try:
                parsed = resp.json()
                body = parsed if isinstance(parsed, dict) else {}
            except ValueError:
                body = {}

        if resp.status_code >= 400 or body.get("success") is False:
            code = body.get("code") or body.get("error_code")
            action = map_error_to_action(resp.status_code, code, authenticated=token is not None)
            handle_error_action(
                action,
                logout=self.on_logout,
                broadcast_status=self.on_broadcast,
                on_rate_limit=lambda: self.on_broadcast("rate_limited"),
            )
            raise ApiError(resp.status_code, code, body.get("message"))

        data = body.get("data")
        return data if isinstance(data, dict) else body

    # --- API wrappers ---

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/auth/login", {"email": email, "password": password})

    def register(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/auth/register", payload)

    def current_user(self, token: str) -> Dict[str, Any]:
        data = self._request("GET", "/auth/me", token=token)
        user = data.get("user", data)
        return user if isinstance(user, dict) else {}

    def verify_login(self, email: str, code: str, challenge_token: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"email": email, "token": code}
        if challenge_token:
            body["tempToken"] = challenge_token
        return self._request("POST", "/2fa/verify-login", body)

    def verify_recovery_code(self, email: str, code: str, challenge_token: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"email": email, "code": code}
        if challenge_token:
            body["tempToken"] = challenge_token
        return self._request("POST", "/2fa/recover", body)

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self._request("POST", "/auth/forgot-password", {"email": email})

    def reset_password(self, reset_token: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/auth/reset-password", {"token": reset_token, "password": password})

    def logout(self, token: str) -> None:
        self._request("POST", "/auth/logout", {}, token=token)


__all__ = ["HttpClient"]
