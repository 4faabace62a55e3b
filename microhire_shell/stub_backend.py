"""极简 stub 身份服务：按请求路径返回约定信封或错误。

仅用于本地集成测试，替代真实后端。所有路径挂在 /api 下。
"""

from __future__ import annotations

import argparse
import json
import secrets
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from typing import Any, Dict, List


class StubState:
    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.mode = "ok"  # ok / two_factor / rate_limit / internal
        self.valid_code = "123456"
        self.recovery_codes = {"RECOVERY-0001"}
        self.users: Dict[str, Dict[str, Any]] = {
            "alice@example.com": {
                "password": "correct-horse",
                "user": {"id": "u-1", "email": "alice@example.com", "role": "student", "fullName": "Alice Remote"},
            }
        }
        self.tokens: Dict[str, str] = {}
        self.paths: List[str] = []

    def issue_token(self, email: str) -> str:
        token = f"A-{secrets.token_hex(8)}"
        self.tokens[token] = email
        return token


state = StubState()


def _send_json(handler: BaseHTTPRequestHandler, code: int, payload: Dict[str, Any]) -> None:
    body = json.dumps(payload).encode("utf-8")
    handler.send_response(code)
    handler.send_header("Content-Type", "application/json")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def _fail(handler: BaseHTTPRequestHandler, code: int, message: str, error_code: str | None = None) -> None:
    payload: Dict[str, Any] = {"success": False, "message": message}
    if error_code:
        payload["code"] = error_code
    _send_json(handler, code, payload)


class StubHandler(BaseHTTPRequestHandler):
    def do_POST(self):  # noqa: N802
        state.paths.append(self.path)
        try:
            body = self._read_body()
            if self.path == "/api/auth/login":
                return self._handle_login(body)
            if self.path == "/api/auth/register":
                return self._handle_register(body)
            if self.path == "/api/auth/logout":
                state.tokens.pop(self._bearer() or "", None)
                return _send_json(self, 200, {"success": True})
            if self.path == "/api/2fa/verify-login":
                return self._handle_second_factor(body, body.get("token") == state.valid_code)
            if self.path == "/api/2fa/recover":
                code = body.get("code")
                ok = code in state.recovery_codes
                state.recovery_codes.discard(code)
                return self._handle_second_factor(body, ok)
            if self.path in ("/api/auth/forgot-password", "/api/auth/reset-password"):
                return _send_json(self, 200, {"success": True})
            _fail(self, 404, "not found", "NOT_FOUND")
        except Exception as exc:  # noqa: BLE001
            _fail(self, 500, str(exc), "ERR_INTERNAL")

    def do_GET(self):  # noqa: N802
        state.paths.append(self.path)
        try:
            if self.path == "/api/health":
                return _send_json(self, 200, {"success": True, "data": {"status": "ok"}})
            if self.path == "/api/auth/me":
                email = state.tokens.get(self._bearer() or "")
                if email is None:
                    return _fail(self, 401, "Not authorized", "TOKEN_INVALID")
                return _send_json(self, 200, {"success": True, "user": state.users[email]["user"]})
            _fail(self, 404, "not found", "NOT_FOUND")
        except Exception as exc:  # noqa: BLE001
            _fail(self, 500, str(exc), "ERR_INTERNAL")

    def _read_body(self) -> Dict[str, Any]:
        length = int(self.headers.get("Content-Length") or 0)
        if not length:
            return {}
        data = json.loads(self.rfile.read(length).decode("utf-8"))
        return data if isinstance(data, dict) else {}

    def _bearer(self) -> str | None:
        header = self.headers.get("Authorization") or ""
        return header[len("Bearer "):] if header.startswith("Bearer ") else None

    def _handle_login(self, body: Dict[str, Any]):
        if state.mode == "rate_limit":
            return _fail(self, 429, "Too many requests", "RATE_LIMITED")
        if state.mode == "internal":
            return _fail(self, 500, "Internal error", "ERR_INTERNAL")
        entry = state.users.get(body.get("email", ""))
        if entry is None or entry["password"] != body.get("password"):
            return _fail(self, 401, "Invalid credentials", "INVALID_CREDENTIALS")
        if state.mode == "two_factor":
            return _send_json(self, 200, {"success": True, "data": {"twoFARequired": True, "tempToken": "T-STUB"}})
        token = state.issue_token(body["email"])
        return _send_json(self, 200, {"success": True, "data": {"accessToken": token, "user": entry["user"]}})

    def _handle_register(self, body: Dict[str, Any]):
        email = body.get("email", "")
        if not email or email in state.users:
            return _fail(self, 409, "Email already registered", "EMAIL_TAKEN")
        user = {"id": f"u-{len(state.users) + 1}", "email": email, "role": body.get("role", "student"), "fullName": body.get("fullName", "")}
        state.users[email] = {"password": body.get("password", ""), "user": user}
        token = state.issue_token(email)
        return _send_json(self, 201, {"success": True, "data": {"accessToken": token, "user": user}})

    def _handle_second_factor(self, body: Dict[str, Any], ok: bool):
        email = body.get("email", "")
        if not ok or email not in state.users:
            return _fail(self, 400, "Invalid verification code", "INVALID_2FA_CODE")
        # 与真实服务一致：二次验证只返回 token，不带用户信息
        return _send_json(self, 200, {"success": True, "data": {"accessToken": state.issue_token(email)}})

    def log_message(self, format: str, *args):  # noqa: A002
        return  # silence


class ThreadingHTTPServer(ThreadingMixIn, HTTPServer):
    daemon_threads = True
    allow_reuse_address = True


def create_server(host: str = "127.0.0.1", port: int = 5000) -> HTTPServer:
    """用于测试的 server 工厂，可在测试中调用 shutdown() 结束。"""

    return ThreadingHTTPServer((host, port), StubHandler)


if __name__ == "__main__":  # pragma: no cover
    parser = argparse.ArgumentParser(description="MicroHire stub identity service (for local shell integration tests)")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5000)
    args = parser.parse_args()

    create_server(host=args.host, port=args.port).serve_forever()
