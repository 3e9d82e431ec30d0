"""
Multi-strategy authentication and session engine.

Authenticates users with password, social, OTP, magic-link or biometric
strategies, unifies them under one account per email/phone, and issues
signed session tokens.
"""

from .config import Config, AuthConfig, StorageConfig, load_config
from .services import AuthEngine, AuthResult, ChallengeResult, SessionTokens

__all__ = [
    "Config",
    "AuthConfig",
    "StorageConfig",
    "load_config",
    "AuthEngine",
    "AuthResult",
    "ChallengeResult",
    "SessionTokens",
]
