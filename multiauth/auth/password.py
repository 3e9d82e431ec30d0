"""
Credential hashing and identifier normalization.

Uses bcrypt for stored secrets (passwords and biometric assertion digests).
"""

import hashlib
import logging
import re
from typing import Optional

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt work factor (higher = more secure but slower)
BCRYPT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes
MAX_SECRET_BYTES = 72

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CredentialHasher:
    """
    One-way, salted hashing of secrets using bcrypt.

    Usage:
        hasher = CredentialHasher()
        digest = hasher.hash("my_password")
        is_valid = hasher.verify("my_password", digest)
    """

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        """
        Initialize the hasher.

        Args:
            rounds: bcrypt work factor (default: 12, minimum 4)
        """
        self.rounds = rounds

    def hash(self, secret: str) -> str:
        """
        Hash a secret using bcrypt.

        Args:
            secret: Plain text secret

        Returns:
            Hashed secret string (includes salt and rounds)
        """
        if not secret:
            raise ValueError("Secret cannot be empty")

        encoded = secret.encode("utf-8")
        if len(encoded) > MAX_SECRET_BYTES:
            raise ValueError(f"Secret cannot be longer than {MAX_SECRET_BYTES} bytes")

        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(encoded, salt).decode("utf-8")

    def verify(self, secret: str, digest: str) -> bool:
        """
        Verify a secret against a stored digest.

        bcrypt.checkpw compares in constant time.

        Returns:
            True if the secret matches, False otherwise
        """
        if not secret or not digest:
            return False

        try:
            return bcrypt.checkpw(secret.encode("utf-8"), digest.encode("utf-8"))
        except ValueError as e:
            logger.warning(f"Credential verification error: {e}")
            return False

    def needs_rehash(self, digest: str) -> bool:
        """
        Check if a digest was produced with a different work factor.

        bcrypt hash format: $2b$rounds$salt+hash
        """
        parts = digest.split("$")
        if len(parts) >= 3 and parts[2].isdigit():
            return int(parts[2]) != self.rounds
        return True


def derive_assertion_digest(assertion: str) -> str:
    """
    Reduce a biometric assertion payload to a fixed-size digest.

    Assertions are arbitrarily long, so they are pre-hashed with SHA-256
    before going through bcrypt.
    """
    return hashlib.sha256(assertion.encode("utf-8")).hexdigest()


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize an email address for lookups (trimmed, lowercased).

    Returns:
        Normalized email or None if blank or not shaped like an address
    """
    if not email:
        return None

    cleaned = email.strip().lower()
    if not EMAIL_PATTERN.match(cleaned):
        return None
    return cleaned


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to E.164.

    Removes spaces, dashes, parentheses and ensures it starts with +.

    Args:
        phone: Phone number in any format

    Returns:
        Normalized phone number or None if invalid

    Examples:
        normalize_phone("+1 (555) 123-4567") -> "+15551234567"
        normalize_phone("5511999999999") -> "+5511999999999"
    """
    if not phone:
        return None

    # Remove all non-digit characters except +
    cleaned = "".join(c for c in phone.strip() if c.isdigit() or c == "+")

    if not cleaned.startswith("+"):
        cleaned = "+" + cleaned

    digits = cleaned[1:]
    if not digits.isdigit():
        return None

    # E.164: country code + subscriber number, at most 15 digits
    if len(digits) < 8 or len(digits) > 15:
        return None

    return cleaned
