"""
tests/test_otp.py -- Unit tests for OTPManager (auth/otp.py).

Single use, ten-minute expiry, purpose scoping, and supersession of older
codes when a new one is issued.
"""

from __future__ import annotations

import pytest

from auth.otp import OTPManager, OtpStatus
from auth.store import UserStore

_KEY = "otp-test-key-0123456789abcdef0123456789"


@pytest.fixture
def otp(store: UserStore, clock) -> OTPManager:
    return OTPManager(store, _KEY, expire_minutes=10, now=clock)


class TestIssue:
    def test_code_is_six_digits(self, otp: OTPManager) -> None:
        for _ in range(20):
            code = otp.issue("u1", "email_verification")
            assert len(code) == 6
            assert code.isdigit()

    def test_plain_code_is_not_stored(self, otp: OTPManager, store: UserStore) -> None:
        """Only the HMAC is persisted; looking up by the raw code finds nothing."""
        code = otp.issue("u1", "email_verification")
        assert store.latest_unused_otp("u1", code, "email_verification") is None

    def test_new_code_supersedes_previous(self, otp: OTPManager) -> None:
        first = otp.issue("u1", "email_verification")
        second = otp.issue("u1", "email_verification")
        if first != second:
            assert otp.verify("u1", first, "email_verification") is OtpStatus.invalid
        assert otp.verify("u1", second, "email_verification") is OtpStatus.valid


class TestVerify:
    def test_valid_then_single_use(self, otp: OTPManager) -> None:
        code = otp.issue("u1", "email_verification")
        assert otp.verify("u1", code, "email_verification") is OtpStatus.valid
        assert otp.verify("u1", code, "email_verification") is OtpStatus.invalid

    def test_wrong_code_is_invalid(self, otp: OTPManager) -> None:
        code = otp.issue("u1", "email_verification")
        wrong = f"{(int(code) + 1) % 1_000_000:06d}"
        assert otp.verify("u1", wrong, "email_verification") is OtpStatus.invalid
        # the real code is still usable after a miss
        assert otp.verify("u1", code, "email_verification") is OtpStatus.valid

    def test_expired_after_ten_minutes(self, otp: OTPManager, clock) -> None:
        code = otp.issue("u1", "password_reset")
        clock.advance(minutes=10, seconds=1)
        assert otp.verify("u1", code, "password_reset") is OtpStatus.expired

    def test_still_valid_just_before_expiry(self, otp: OTPManager, clock) -> None:
        code = otp.issue("u1", "password_reset")
        clock.advance(minutes=9, seconds=59)
        assert otp.verify("u1", code, "password_reset") is OtpStatus.valid

    def test_purpose_scoped(self, otp: OTPManager) -> None:
        """A verification code cannot reset a password, and vice versa."""
        code = otp.issue("u1", "email_verification")
        assert otp.verify("u1", code, "password_reset") is OtpStatus.invalid
        assert otp.verify("u1", code, "email_verification") is OtpStatus.valid

    def test_user_scoped(self, otp: OTPManager) -> None:
        code = otp.issue("u1", "email_verification")
        assert otp.verify("u2", code, "email_verification") is OtpStatus.invalid

    @pytest.mark.parametrize("bad", ["", "12345", "1234567", "12a456", " 12345"])
    def test_malformed_code_is_invalid(self, otp: OTPManager, bad: str) -> None:
        otp.issue("u1", "email_verification")
        assert otp.verify("u1", bad, "email_verification") is OtpStatus.invalid

    def test_lost_mark_race_is_invalid(self, otp: OTPManager, store: UserStore, monkeypatch) -> None:
        """If another request flips the row between lookup and update, this one fails."""
        code = otp.issue("u1", "email_verification")
        monkeypatch.setattr(store, "mark_otp_used", lambda otp_id: False)
        assert otp.verify("u1", code, "email_verification") is OtpStatus.invalid

    def test_different_key_cannot_verify(self, store: UserStore, clock) -> None:
        code = OTPManager(store, _KEY, now=clock).issue("u1", "email_verification")
        other = OTPManager(store, "another-key-0123456789abcdef0123456789", now=clock)
        assert other.verify("u1", code, "email_verification") is OtpStatus.invalid
