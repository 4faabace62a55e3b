from __future__ import annotations

import json
import os
import tempfile
import unittest
from datetime import timedelta

import requests

from microhire_shell.client_config import ClientConfig, derive_socket_url, load_config
from microhire_shell.error_handling import ApiError
from microhire_shell.reachability import ReachabilityMonitor, ReachabilityProbe

from support import FakeClock


class ReachabilityTests(unittest.TestCase):
    def test_probe(self):
        self.assertTrue(ReachabilityProbe(lambda: {"status": "ok"}).check())

        def refused():
            raise requests.ConnectionError("refused")

        def unhealthy():
            raise ApiError(503)

        self.assertFalse(ReachabilityProbe(refused).check())
        self.assertFalse(ReachabilityProbe(unhealthy).check())

    def test_monitor_ticks_on_interval(self):
        clock = FakeClock()
        checks = []
        monitor = ReachabilityMonitor(on_check=lambda: checks.append(clock.now), interval=timedelta(seconds=30))
        self.assertFalse(monitor.tick(clock.now))
        monitor.start(clock.now)
        clock.advance(29)
        self.assertFalse(monitor.tick(clock.now))
        clock.advance(1)
        self.assertTrue(monitor.tick(clock.now))
        self.assertEqual(monitor.next_scheduled_at, clock.now + timedelta(seconds=30))
        monitor.stop()
        clock.advance(60)
        self.assertFalse(monitor.tick(clock.now))
        self.assertEqual(len(checks), 1)


class ClientConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, "microhire-client.json")

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_defaults_when_file_missing(self):
        config = load_config(self.path, env={})
        self.assertEqual(config.api_url, "http://localhost:5000/api")
        self.assertEqual(config.socket_url, "http://localhost:5000")
        self.assertEqual(config.reconnection_attempts, 5)

    def test_file_values_and_unknown_keys(self):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"api_url": "https://api.microhire.app/api", "request_timeout": 3, "theme": "dark"}, f)
        config = load_config(self.path, env={})
        self.assertEqual(config.api_url, "https://api.microhire.app/api")
        self.assertEqual(config.socket_url, "https://api.microhire.app")
        self.assertEqual(config.request_timeout, 3)

    def test_env_overrides_file(self):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"api_url": "https://api.microhire.app/api"}, f)
        env = {"MICROHIRE_API_URL": "http://127.0.0.1:9000/api", "MICROHIRE_SOCKET_URL": "http://127.0.0.1:9001"}
        config = load_config(self.path, env=env)
        self.assertEqual(config.api_url, "http://127.0.0.1:9000/api")
        self.assertEqual(config.socket_url, "http://127.0.0.1:9001")

    def test_api_url_argument_keeps_configured_socket_url(self):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"socket_url": "https://rt.microhire.app"}, f)
        config = load_config(self.path, env={}, api_url="http://127.0.0.1:9000/api")
        self.assertEqual(config.api_url, "http://127.0.0.1:9000/api")
        self.assertEqual(config.socket_url, "https://rt.microhire.app")

        env = {"MICROHIRE_SOCKET_URL": "http://127.0.0.1:9001"}
        config = load_config(self.path, env=env, api_url="http://127.0.0.1:9000/api")
        self.assertEqual(config.socket_url, "http://127.0.0.1:9001")

    def test_api_url_argument_wins_over_env_and_derives_socket_url(self):
        env = {"MICROHIRE_API_URL": "http://10.0.0.1/api"}
        config = load_config(self.path, env=env, api_url="http://127.0.0.1:9000/api")
        self.assertEqual(config.api_url, "http://127.0.0.1:9000/api")
        self.assertEqual(config.socket_url, "http://127.0.0.1:9000")

    def test_unreadable_file_falls_back_to_defaults(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("{")
        self.assertEqual(load_config(self.path, env={}).api_url, ClientConfig().api_url)

    def test_derive_socket_url(self):
        self.assertEqual(derive_socket_url("http://h:1/api/"), "http://h:1")
        self.assertEqual(derive_socket_url("http://h:1"), "http://h:1")


if __name__ == "__main__":
    unittest.main()
