from __future__ import annotations

import unittest
from datetime import timedelta

from microhire_shell.domain import FailureReason
from microhire_shell.error_handling import INVALID_CODE_FORMAT_MESSAGE, INVALID_CODE_MESSAGE
from microhire_shell.second_factor import LOCKOUT_DURATION, MAX_ATTEMPTS, SecondFactorVerifier

from support import FakeClock, StubApi, rejected


class SecondFactorVerifierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.api = StubApi()
        self.clock = FakeClock()
        self.verifier = SecondFactorVerifier(self.api, now_provider=self.clock)
        self.verifier.start("alice@example.com", "T-1")

    def _fail_times(self, n: int) -> None:
        self.api.verify_result = rejected(400, "bad code")
        for _ in range(n):
            self.verifier.submit_code("000000")

    def test_successful_code_returns_payload(self):
        result = self.verifier.submit_code("123456")
        self.assertTrue(result.ok)
        self.assertEqual(result.payload, {"accessToken": "A-STEPUP"})
        self.assertEqual(self.api.ops("verify")[0]["challenge_token"], "T-1")

    def test_malformed_code_rejected_without_network_call(self):
        for code in ("12345", "1234567", "12a456", " 123456", ""):
            result = self.verifier.submit_code(code)
            self.assertFalse(result.ok)
            self.assertEqual(result.error, INVALID_CODE_FORMAT_MESSAGE)
        self.assertEqual(self.api.ops("verify"), [])
        self.assertEqual(self.verifier.challenge.lockout.attempts, 0)

    def test_wrong_code_counts_attempt(self):
        self._fail_times(1)
        self.assertEqual(self.verifier.challenge.lockout.attempts, 1)
        self.assertIsNone(self.verifier.challenge.lockout.locked_until)

    def test_fifth_failure_locks_for_five_minutes(self):
        self._fail_times(MAX_ATTEMPTS - 1)
        self.api.verify_result = rejected(400)
        result = self.verifier.submit_code("000000")
        self.assertEqual(result.reason, FailureReason.LOCKED_OUT)
        self.assertEqual(result.retry_after_seconds, 300)
        self.assertEqual(self.verifier.challenge.lockout.locked_until, self.clock.now + LOCKOUT_DURATION)

    def test_locked_submission_makes_no_network_call(self):
        self._fail_times(MAX_ATTEMPTS)
        calls_before = len(self.api.ops("verify"))
        self.clock.advance(60)
        self.api.verify_result = {"accessToken": "A-LATE"}
        result = self.verifier.submit_code("123456")
        self.assertFalse(result.ok)
        self.assertEqual(result.reason, FailureReason.LOCKED_OUT)
        self.assertEqual(result.retry_after_seconds, 240)
        self.assertEqual(len(self.api.ops("verify")), calls_before)

    def test_remaining_seconds_round_up(self):
        self._fail_times(MAX_ATTEMPTS)
        self.clock.advance(299.2)
        result = self.verifier.submit_code("123456")
        self.assertEqual(result.retry_after_seconds, 1)
        self.assertIn("1 seconds", result.error)

    def test_after_expiry_submission_is_evaluated(self):
        self._fail_times(MAX_ATTEMPTS)
        self.clock.advance(LOCKOUT_DURATION.total_seconds())
        self.api.verify_result = {"accessToken": "A-OK"}
        result = self.verifier.submit_code("123456")
        self.assertTrue(result.ok)

    def test_failure_after_expiry_relocks(self):
        self._fail_times(MAX_ATTEMPTS)
        self.clock.advance(LOCKOUT_DURATION.total_seconds() + 1)
        self.api.verify_result = rejected(400)
        result = self.verifier.submit_code("000000")
        self.assertEqual(result.reason, FailureReason.LOCKED_OUT)
        self.assertEqual(self.verifier.challenge.lockout.locked_until, self.clock.now + timedelta(minutes=5))

    def test_recovery_codes_share_attempt_counter(self):
        self._fail_times(3)
        self.api.verify_result = rejected(400)
        self.verifier.submit_recovery_code("RC-1")
        result = self.verifier.submit_recovery_code("RC-2")
        self.assertEqual(result.reason, FailureReason.LOCKED_OUT)
        self.assertEqual(len(self.api.ops("recover")), 2)

    def test_recovery_code_is_trimmed_and_empty_rejected_locally(self):
        result = self.verifier.submit_recovery_code("   ")
        self.assertFalse(result.ok)
        self.assertEqual(self.api.ops("recover"), [])
        self.verifier.submit_recovery_code("  RC-9  ")
        self.assertEqual(self.api.ops("recover")[0]["code"], "RC-9")

    def test_network_error_does_not_count(self):
        self.api.reachable = False
        result = self.verifier.submit_code("123456")
        self.assertEqual(result.reason, FailureReason.NETWORK)
        self.assertEqual(self.verifier.challenge.lockout.attempts, 0)

    def test_response_without_token_counts_as_failure(self):
        self.api.verify_result = {}
        result = self.verifier.submit_code("123456")
        self.assertEqual(result.error, INVALID_CODE_MESSAGE)
        self.assertEqual(self.verifier.challenge.lockout.attempts, 1)

    def test_new_challenge_resets_lockout(self):
        self._fail_times(MAX_ATTEMPTS)
        self.verifier.start("alice@example.com", "T-2")
        self.assertEqual(self.verifier.challenge.lockout.attempts, 0)
        self.assertFalse(self.verifier.challenge.lockout.is_locked(self.clock.now))

    def test_submit_without_challenge(self):
        self.verifier.cancel()
        result = self.verifier.submit_code("123456")
        self.assertEqual(result.reason, FailureReason.NO_CHALLENGE)
        self.assertEqual(self.api.ops("verify"), [])


if __name__ == "__main__":
    unittest.main()
