from __future__ import annotations

import json
import os
import tempfile
import unittest

from microhire_shell.credential_store import CredentialStore, default_store_path, origin_key


class CredentialStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, "origin", "credentials.json")
        self.store = CredentialStore(self.path)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_missing_file_loads_empty(self):
        creds = self.store.load()
        self.assertTrue(creds.empty)

    def test_save_and_load_remote_token(self):
        self.store.save("A-1")
        creds = self.store.load()
        self.assertEqual(creds.token, "A-1")
        self.assertIsNone(creds.fallback_user)

    def test_save_without_fallback_user_drops_previous_identity(self):
        self.store.save("local.student-1.aa", {"id": "student-1", "role": "student"})
        self.store.save("A-2")
        creds = self.store.load()
        self.assertEqual(creds.token, "A-2")
        self.assertIsNone(creds.fallback_user)

    def test_clear_removes_both_keys_and_is_idempotent(self):
        self.store.save("T", {"id": "x", "role": "admin"})
        self.store.clear()
        self.store.clear()
        self.assertTrue(self.store.load().empty)
        self.assertFalse(os.path.exists(self.path))

    def test_corrupted_file_raises_value_error(self):
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("{not json")
        with self.assertRaises(ValueError):
            self.store.load()

    def test_non_object_payload_raises_value_error(self):
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(["token"], f)
        with self.assertRaises(ValueError):
            self.store.load()

    def test_no_temp_files_left_after_save(self):
        self.store.save("T")
        leftovers = [n for n in os.listdir(os.path.dirname(self.path)) if n.endswith(".tmp")]
        self.assertEqual(leftovers, [])


class StorePathTests(unittest.TestCase):
    def test_origin_key_includes_scheme_host_and_port(self):
        self.assertEqual(origin_key("http://localhost:5000/api"), "http_localhost_5000")
        self.assertEqual(origin_key("https://api.microhire.app/api"), "https_api.microhire.app_443")

    def test_default_path_is_scoped_by_origin(self):
        with tempfile.TemporaryDirectory() as home:
            a = default_store_path("http://localhost:5000/api", home=home)
            b = default_store_path("http://localhost:6000/api", home=home)
            self.assertNotEqual(os.path.dirname(a), os.path.dirname(b))
            self.assertTrue(a.startswith(home))


if __name__ == "__main__":
    unittest.main()
