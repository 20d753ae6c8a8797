"""
Unit tests for ConsoleEmailSender adapter.

Tests verify the console email sender satisfies the EmailSender protocol
and logs verification codes in the expected format.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from clinic_onboarding.adapters.smtp.console import ConsoleEmailSender
from clinic_onboarding.domain.ports import EmailSender


class TestConsoleEmailSenderProtocol:
    def test_satisfies_email_sender_protocol(self) -> None:
        sender: EmailSender = ConsoleEmailSender()
        assert callable(sender.send_verification_code)

    def test_no_explicit_inheritance(self) -> None:
        """ConsoleEmailSender uses structural subtyping, not inheritance."""
        assert ConsoleEmailSender.__bases__ == (object,)


class TestSendVerificationCode:
    def test_logs_at_info(self, caplog: pytest.LogCaptureFixture) -> None:
        sender = ConsoleEmailSender()

        with caplog.at_level(logging.INFO):
            sender.send_verification_code("owner@clinic.com", "123456")

        assert len(caplog.records) == 1
        assert caplog.records[0].levelno == logging.INFO

    def test_log_format(self, caplog: pytest.LogCaptureFixture) -> None:
        """Format: [VERIFICATION] Email: ... Code: ..."""
        sender = ConsoleEmailSender()

        with caplog.at_level(logging.INFO):
            sender.send_verification_code("owner@clinic.com", "004217")

        assert "[VERIFICATION] Email: owner@clinic.com Code: 004217" in caplog.text

    def test_returns_none(self) -> None:
        assert ConsoleEmailSender().send_verification_code("owner@clinic.com", "123456") is None


class TestThreadSafety:
    def test_concurrent_calls_all_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        sender = ConsoleEmailSender()

        with caplog.at_level(logging.INFO), ThreadPoolExecutor(max_workers=5) as executor:
            futures = [
                executor.submit(sender.send_verification_code, f"user{i}@clinic.com", f"{i:06d}")
                for i in range(10)
            ]
            for f in futures:
                f.result()

        assert len(caplog.records) == 10
        for record in caplog.records:
            assert record.message.startswith("[VERIFICATION] Email: user")
