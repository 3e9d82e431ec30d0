"""
Unit tests for environment-driven configuration.
"""

from pathlib import Path

import pytest

from multiauth.config import AuthConfig, load_config


class TestAuthConfig:

    @pytest.mark.unit
    def test_defaults(self, monkeypatch):
        for name in ("AUTH_SESSION_TTL_SECONDS", "AUTH_OTP_MAX_ATTEMPTS", "AUTH_SOCIAL_PROVIDERS",
                     "AUTH_BIOMETRIC_REENROLL", "AUTH_MAGIC_LINK_TTL_SECONDS"):
            monkeypatch.delenv(name, raising=False)

        config = AuthConfig()

        assert config.session_ttl_seconds == 7 * 86400
        assert config.magic_link_ttl_seconds == 900
        assert config.otp_max_attempts == 5
        assert config.social_providers == ["google", "github", "sso"]
        assert config.biometric_reenroll is True

    @pytest.mark.unit
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("AUTH_SESSION_TTL_SECONDS", "60")
        monkeypatch.setenv("AUTH_SOCIAL_PROVIDERS", " Google , okta,")
        monkeypatch.setenv("AUTH_BIOMETRIC_REENROLL", "False")
        monkeypatch.setenv("USERS_FILE", "/tmp/multiauth-users.json")

        config = load_config()

        assert config.auth.session_ttl_seconds == 60
        assert config.auth.social_providers == ["google", "okta"]
        assert config.auth.biometric_reenroll is False
        assert config.storage.users_file == Path("/tmp/multiauth-users.json")

    @pytest.mark.unit
    def test_secret_from_env(self):
        assert AuthConfig().secret_key == "test_jwt_secret_key_for_testing_only_32bytes!"
