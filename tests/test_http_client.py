from __future__ import annotations

import json
import unittest
from unittest import mock

import requests

from microhire_shell.error_handling import ApiError
from microhire_shell.http_client import HttpClient


def _response(status: int, body=None) -> mock.Mock:
    resp = mock.Mock()
    resp.status_code = status
    resp.content = json.dumps(body).encode("utf-8") if body is not None else b""
    resp.json.return_value = body
    return resp


class HttpClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock(spec=requests.Session)
        self.logouts = []
        self.broadcasts = []
        self.client = HttpClient(
            "http://localhost:5000/api/",
            on_logout=lambda: self.logouts.append(True),
            on_broadcast=self.broadcasts.append,
            timeout=3,
            session=self.session,
        )

    def test_envelope_data_is_unwrapped(self):
        self.session.request.return_value = _response(200, {"success": True, "data": {"accessToken": "A"}})
        self.assertEqual(self.client.login("a@b.c", "pw"), {"accessToken": "A"})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "http://localhost:5000/api/auth/login"))
        self.assertEqual(kwargs["json"], {"email": "a@b.c", "password": "pw"})
        self.assertEqual(kwargs["timeout"], 3)

    def test_bearer_header_and_user_unwrap(self):
        self.session.request.return_value = _response(200, {"success": True, "user": {"id": "u"}})
        self.assertEqual(self.client.current_user("A-1"), {"id": "u"})
        headers = self.session.request.call_args.kwargs["headers"]
        self.assertEqual(headers["Authorization"], "Bearer A-1")

    def test_login_401_raises_without_logout(self):
        self.session.request.return_value = _response(401, {"success": False, "message": "Invalid credentials"})
        with self.assertRaises(ApiError) as ctx:
            self.client.login("a@b.c", "bad")
        self.assertEqual(ctx.exception.status, 401)
        self.assertEqual(ctx.exception.message, "Invalid credentials")
        self.assertEqual(self.logouts, [])

    def test_authenticated_401_forces_logout(self):
        self.session.request.return_value = _response(401, {"success": False, "code": "TOKEN_EXPIRED"})
        with self.assertRaises(ApiError):
            self.client.current_user("A-1")
        self.assertEqual(self.logouts, [True])
        self.assertEqual(self.broadcasts, ["expired"])

    def test_rate_limit_broadcast(self):
        self.session.request.return_value = _response(429, {"success": False})
        with self.assertRaises(ApiError):
            self.client.forgot_password("a@b.c")
        self.assertEqual(self.broadcasts, ["rate_limited"])

    def test_connection_reset_retried_once(self):
        self.session.request.side_effect = [requests.ConnectionError("reset"), _response(200, {"success": True})]
        self.assertEqual(self.client.health(), {"success": True})
        self.assertEqual(self.session.request.call_count, 2)

    def test_second_connection_error_propagates(self):
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(requests.RequestException):
            self.client.health()

    def test_step_up_bodies(self):
        self.session.request.return_value = _response(200, {"success": True, "data": {"accessToken": "A"}})
        self.client.verify_login("a@b.c", "123456", "T-1")
        self.assertEqual(self.session.request.call_args.kwargs["json"], {"email": "a@b.c", "token": "123456", "tempToken": "T-1"})
        self.client.verify_recovery_code("a@b.c", "RC", None)
        self.assertEqual(self.session.request.call_args.kwargs["json"], {"email": "a@b.c", "code": "RC"})


if __name__ == "__main__":
    unittest.main()
