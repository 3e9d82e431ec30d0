"""
Error taxonomy for the auth engine.

Every failure the engine reports is an AuthError subclass with a stable
machine-readable code and a human message. Messages for secret-guessing
sensitive failures are fixed strings so they never reveal which check failed.
"""

from typing import Optional

INVALID_EMAIL_OR_PASSWORD = "Invalid email or password"
INVALID_PHONE_OR_CODE = "Invalid phone or code"
INVALID_BIOMETRIC = "Biometric authentication failed"


class AuthError(Exception):
    """Base class for all auth failures."""

    code = "auth_error"
    default_message = "Authentication failed"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict:
        result = {"code": self.code, "message": self.message}
        if self.field:
            result["field"] = self.field
        return result


class ValidationError(AuthError):
    """Missing or malformed input. Fully detailed to the caller."""
    code = "validation_error"
    default_message = "Invalid request"


class DuplicateIdentity(AuthError):
    """An account already exists for this identifier."""
    code = "duplicate_identity"
    default_message = "User already exists with this email"


class InvalidCredential(AuthError):
    """Wrong secret or mismatched strategy."""
    code = "invalid_credential"
    default_message = INVALID_EMAIL_OR_PASSWORD


class ChallengeExpired(AuthError):
    code = "challenge_expired"
    default_message = "Challenge has expired, please request a new one"


class ChallengeInvalid(AuthError):
    code = "challenge_invalid"
    default_message = "Invalid or unknown challenge"


class Unauthenticated(AuthError):
    code = "unauthenticated"
    default_message = "Not authenticated"


class TokenExpired(Unauthenticated):
    """Session lapsed naturally. Same access decision as Unauthenticated."""
    code = "token_expired"
    default_message = "Session has expired"


class AccountNotFound(AuthError):
    code = "account_not_found"
    default_message = "User not found"


class UpstreamUnavailable(AuthError):
    """Repository or notifier failure. Safe to retry."""
    code = "upstream_unavailable"
    default_message = "Service temporarily unavailable, please retry"


class UpstreamTimeout(UpstreamUnavailable):
    code = "upstream_timeout"
    default_message = "Upstream service timed out, please retry"


class DeliveryFailed(UpstreamUnavailable):
    code = "delivery_failed"
    default_message = "Could not deliver the challenge, please retry"
