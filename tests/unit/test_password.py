"""
Unit tests for the credential hasher and identifier normalization.
"""

import pytest

from multiauth.auth import CredentialHasher, normalize_email, normalize_phone
from multiauth.auth.password import derive_assertion_digest


class TestCredentialHasher:
    """Tests for CredentialHasher class."""

    @pytest.mark.unit
    def test_hash_secret(self, hasher):
        """Test secret hashing."""
        hashed = hasher.hash("SecurePassword123!")

        assert hashed != "SecurePassword123!"
        assert hashed.startswith("$2b$04$")  # bcrypt prefix with work factor

    @pytest.mark.unit
    def test_verify_correct_secret(self, hasher):
        hashed = hasher.hash("SecurePassword123!")
        assert hasher.verify("SecurePassword123!", hashed) is True

    @pytest.mark.unit
    def test_verify_incorrect_secret(self, hasher):
        hashed = hasher.hash("SecurePassword123!")
        assert hasher.verify("WrongPassword", hashed) is False

    @pytest.mark.unit
    def test_same_secret_has_different_hash_each_time(self, hasher):
        """Same secret produces different hashes (salt) that both verify."""
        hash1 = hasher.hash("SamePassword")
        hash2 = hasher.hash("SamePassword")

        assert hash1 != hash2
        assert hasher.verify("SamePassword", hash1) is True
        assert hasher.verify("SamePassword", hash2) is True

    @pytest.mark.unit
    def test_empty_secret(self, hasher):
        with pytest.raises(ValueError, match="cannot be empty"):
            hasher.hash("")

    @pytest.mark.unit
    def test_secret_over_72_bytes_rejected(self, hasher):
        with pytest.raises(ValueError, match="cannot be longer than 72"):
            hasher.hash("A" * 100)

    @pytest.mark.unit
    def test_unicode_secret(self, hasher):
        hashed = hasher.hash("Senha123!àéïõü")
        assert hasher.verify("Senha123!àéïõü", hashed) is True

    @pytest.mark.unit
    def test_verify_garbage_digest_is_false(self, hasher):
        assert hasher.verify("password", "not-a-bcrypt-hash") is False
        assert hasher.verify("", "$2b$04$abc") is False

    @pytest.mark.unit
    def test_needs_rehash(self, hasher):
        stronger = CredentialHasher(rounds=5)
        digest = hasher.hash("password")

        assert hasher.needs_rehash(digest) is False
        assert stronger.needs_rehash(digest) is True
        assert hasher.needs_rehash("garbage") is True

    @pytest.mark.unit
    def test_default_work_factor(self):
        assert CredentialHasher().rounds == 12


class TestAssertionDigest:

    @pytest.mark.unit
    def test_digest_is_fixed_size_and_stable(self):
        digest = derive_assertion_digest("x" * 10_000)

        assert len(digest) == 64
        assert digest == derive_assertion_digest("x" * 10_000)
        assert digest != derive_assertion_digest("y" * 10_000)


class TestNormalizeEmail:

    @pytest.mark.unit
    @pytest.mark.parametrize("raw,expected", [
        ("A@X.com", "a@x.com"),
        ("  user@Example.ORG ", "user@example.org"),
        ("not-an-email", None),
        ("", None),
        (None, None),
        ("two@@x.com", None),
    ])
    def test_normalize_email(self, raw, expected):
        assert normalize_email(raw) == expected


class TestNormalizePhone:

    @pytest.mark.unit
    @pytest.mark.parametrize("raw,expected", [
        ("+15551234567", "+15551234567"),
        ("+1 (555) 123-4567", "+15551234567"),
        ("5511999999999", "+5511999999999"),
        ("+55 11 99999-9999", "+5511999999999"),
        ("123", None),
        ("+1234567890123456", None),
        ("", None),
        (None, None),
        ("+1+5551234567", None),
    ])
    def test_normalize_phone(self, raw, expected):
        assert normalize_phone(raw) == expected
