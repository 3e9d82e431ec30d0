"""
Authentication building blocks.

Credential hashing (bcrypt), JWT session codec, account storage, OTP
challenge storage and the per-strategy resolvers.
"""

from .password import CredentialHasher, normalize_email, normalize_phone
from .tokens import TokenCodec, TokenPayload
from .accounts import Account, AccountSeed, AccountStore, Profile, merge_profile
from .challenges import ChallengeFileStore
from .resolvers import Strategy

__all__ = [
    "CredentialHasher",
    "normalize_email",
    "normalize_phone",
    "TokenCodec",
    "TokenPayload",
    "Account",
    "AccountSeed",
    "AccountStore",
    "Profile",
    "merge_profile",
    "ChallengeFileStore",
    "Strategy",
]
