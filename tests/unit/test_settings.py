"""
Unit tests for application settings.
"""

import pytest

from clinic_onboarding.config.settings import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("REGISTRATION_TTL_DAYS", raising=False)
        monkeypatch.delenv("SIMULATE_INSTANT_PAYMENTS", raising=False)
        monkeypatch.delenv("MAX_VERIFICATION_ATTEMPTS", raising=False)

        settings = Settings(_env_file=None)

        assert settings.registration_ttl_days == 7
        assert settings.verification_code_length == 6
        assert settings.simulate_instant_payments is True
        assert settings.default_currency == "IDR"
        assert settings.verification_code_ttl_minutes == 15
        assert settings.max_verification_attempts == 3
        assert settings.resend_cooldown_minutes == 5

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REGISTRATION_TTL_DAYS", "3")
        monkeypatch.setenv("SIMULATE_INSTANT_PAYMENTS", "false")

        settings = Settings(_env_file=None)

        assert settings.registration_ttl_days == 3
        assert settings.simulate_instant_payments is False

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_verification_limits_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_VERIFICATION_ATTEMPTS", "5")
        monkeypatch.setenv("RESEND_COOLDOWN_MINUTES", "1")

        settings = Settings(_env_file=None)

        assert settings.max_verification_attempts == 5
        assert settings.resend_cooldown_minutes == 1
