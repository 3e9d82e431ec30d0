"""
Session token codec.

Mints and verifies signed, time-bounded JWTs. Two token types share the
codec: long-lived session credentials and short-lived magic-link
challenges. A token is only ever accepted as the type it was minted for.
"""

import time
import logging
from typing import Callable, Literal, Optional
from dataclasses import dataclass, asdict

from jose import jwt, JWTError

from .password import normalize_email
from ..config import DEFAULT_SECRET_KEY

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SESSION_TOKEN_EXPIRE_SECONDS = 86400 * 7  # 7 days
MAGIC_LINK_EXPIRE_SECONDS = 900  # 15 minutes

TokenType = Literal["session", "magic_link"]


class TokenVerificationError(Exception):
    """Base class for token verification failures."""


class MalformedToken(TokenVerificationError):
    """Token cannot be parsed or is missing required claims."""


class SignatureMismatch(TokenVerificationError):
    """Token was not signed with the active secret."""


class TokenExpiredError(TokenVerificationError):
    """Token is well-formed and correctly signed but outside its validity window."""


class WrongTokenType(TokenVerificationError):
    """Token is valid but was minted for another purpose."""


@dataclass
class TokenPayload:
    """JWT token payload."""
    sub: str  # Account id for sessions, email for magic links
    exp: int  # Expiration timestamp
    iat: int  # Issued at timestamp
    token_type: str = "session"
    auth_method: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "TokenPayload":
        try:
            return cls(
                sub=str(data["sub"]),
                exp=int(data["exp"]),
                iat=int(data["iat"]),
                token_type=str(data.get("token_type", "session")),
                auth_method=data.get("auth_method"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedToken(f"Missing or invalid claim: {e}") from e


class TokenCodec:
    """
    Handles JWT token generation and validation.

    Supports:
    - Session tokens (bearer credential returned after authentication)
    - Magic-link tokens (prove control of an email address)

    The clock is injected so expiry can be controlled in tests.
    """

    def __init__(
        self,
        secret_key: str,
        clock: Optional[Callable[[], float]] = None,
        session_ttl: int = SESSION_TOKEN_EXPIRE_SECONDS,
        magic_link_ttl: int = MAGIC_LINK_EXPIRE_SECONDS
    ):
        """
        Initialize the codec.

        Args:
            secret_key: Active signing secret
            clock: Returns the current unix time (default: time.time)
            session_ttl: Default session lifetime in seconds
            magic_link_ttl: Default magic-link lifetime in seconds
        """
        if not secret_key:
            raise ValueError("Signing secret cannot be empty")

        self.secret_key = secret_key
        self.clock = clock or time.time
        self.session_ttl = session_ttl
        self.magic_link_ttl = magic_link_ttl

        if self.secret_key == DEFAULT_SECRET_KEY:
            logger.warning(
                "Using default JWT secret key. "
                "Set JWT_SECRET_KEY environment variable in production!"
            )

    def _now(self) -> int:
        return int(self.clock())

    def _encode(self, payload: TokenPayload) -> str:
        return jwt.encode(payload.to_dict(), self.secret_key, algorithm=ALGORITHM)

    def issue_session(
        self,
        account_id: str,
        auth_method: Optional[str] = None,
        ttl: Optional[int] = None
    ) -> str:
        """
        Create a session token.

        Args:
            account_id: Account identifier (token subject)
            auth_method: How the account was created, informational only
            ttl: Lifetime in seconds (default: session_ttl)

        Returns:
            Encoded JWT token string
        """
        now = self._now()
        exp = now + (self.session_ttl if ttl is None else ttl)

        token = self._encode(TokenPayload(
            sub=account_id,
            exp=exp,
            iat=now,
            token_type="session",
            auth_method=auth_method
        ))
        logger.debug(f"Issued session token for account {account_id}, expires in {exp - now}s")
        return token

    def issue_magic_link(self, email: str, ttl: Optional[int] = None) -> str:
        """Create a magic-link token bound to a normalized email."""
        normalized = normalize_email(email)
        if not normalized:
            raise ValueError(f"Invalid email: {email}")

        now = self._now()
        exp = now + (self.magic_link_ttl if ttl is None else ttl)
        return self._encode(TokenPayload(sub=normalized, exp=exp, iat=now, token_type="magic_link"))

    def decode(self, token: str, expected_type: TokenType = "session") -> TokenPayload:
        """
        Verify and decode a token.

        Args:
            token: JWT token string
            expected_type: Token type the caller is willing to accept

        Returns:
            TokenPayload if valid

        Raises:
            MalformedToken: Token cannot be parsed
            SignatureMismatch: Token not signed with the active secret
            TokenExpiredError: Outside iat <= now < exp
            WrongTokenType: Token minted for another purpose
        """
        if not token or not isinstance(token, str):
            raise MalformedToken("Empty token")

        try:
            jwt.get_unverified_claims(token)
        except JWTError as e:
            raise MalformedToken(str(e)) from e

        try:
            # Expiry is checked below against the injected clock
            data = jwt.decode(
                token,
                self.secret_key,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "verify_nbf": False}
            )
        except JWTError as e:
            raise SignatureMismatch(str(e)) from e

        payload = TokenPayload.from_dict(data)

        now = self._now()
        if not (payload.iat <= now < payload.exp):
            raise TokenExpiredError(f"Token outside validity window (now={now}, exp={payload.exp})")

        if payload.token_type != expected_type:
            raise WrongTokenType(f"Expected {expected_type} token, got {payload.token_type}")

        return payload

    def verify(self, token: str) -> str:
        """
        Verify a session token.

        Returns:
            Account id carried by the token
        """
        return self.decode(token, "session").sub

    def verify_magic_link(self, token: str) -> str:
        """
        Verify a magic-link token.

        Returns:
            Email address the link was issued for
        """
        return self.decode(token, "magic_link").sub
