"""
Services layer.

The auth engine is the single entry point the API (or any other
interface) talks to.
"""

from .auth_engine import AuthEngine, AuthResult, ChallengeResult, SessionTokens

__all__ = [
    "AuthEngine",
    "AuthResult",
    "ChallengeResult",
    "SessionTokens",
]
