"""
Strategy resolvers.

One resolver per authentication strategy. A resolver validates the
strategy-specific credentials, consults the account repository and turns
the attempt into one of three outcomes:

    Authenticated(account)   - existing account, proof accepted
    NeedsCreation(seed)      - unseen identifier, engine should create it
    Rejected(reason, ...)    - typed refusal, engine maps it to an AuthError

Resolvers never create accounts and never mint sessions; the engine does.
"""

import logging
import re
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .accounts import (
    Account,
    AccountRepository,
    AccountSeed,
    Profile,
    merge_profile,
    DEFAULT_TIMEOUT,
    SOCIAL_AUTH_METHODS,
)
from .challenges import ChallengeCheck, ChallengeStore
from .password import (
    CredentialHasher,
    MAX_SECRET_BYTES,
    derive_assertion_digest,
    normalize_email,
    normalize_phone,
)
from .tokens import TokenCodec, TokenExpiredError, TokenVerificationError
from ..errors import INVALID_BIOMETRIC, INVALID_EMAIL_OR_PASSWORD, INVALID_PHONE_OR_CODE

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
OTP_PATTERN = re.compile(r"^\d{6}$")


class Strategy(str, Enum):
    """Supported ways of proving identity."""
    PASSWORD = "password"
    SOCIAL = "social"
    OTP = "otp"
    MAGIC_LINK = "magic_link"
    BIOMETRIC = "biometric"


class RejectionReason(str, Enum):
    MISSING_FIELD = "missing_field"
    INVALID_FORMAT = "invalid_format"
    STRATEGY_MISMATCH = "strategy_mismatch"
    NOT_FOUND = "not_found"
    BAD_SECRET = "bad_secret"
    ALREADY_EXISTS = "already_exists"
    CHALLENGE_EXPIRED = "challenge_expired"
    CHALLENGE_INVALID = "challenge_invalid"


# Credential variants

@dataclass
class PasswordLogin:
    email: Optional[str] = None
    password: Optional[str] = None


@dataclass
class PasswordRegistration:
    email: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None


@dataclass
class SocialLogin:
    email: Optional[str] = None
    provider: Optional[str] = None
    provider_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None


@dataclass
class OTPConfirmation:
    phone: Optional[str] = None
    code: Optional[str] = None


@dataclass
class MagicLinkConfirmation:
    token: Optional[str] = None


@dataclass
class BiometricAssertion:
    email: Optional[str] = None
    assertion: Optional[str] = None


Credentials = Union[
    PasswordLogin,
    PasswordRegistration,
    SocialLogin,
    OTPConfirmation,
    MagicLinkConfirmation,
    BiometricAssertion,
]

# Camel-case field names sent by web clients
PAYLOAD_ALIASES = {
    "firstName": "first_name",
    "lastName": "last_name",
    "providerId": "provider_id",
    "biometricData": "assertion",
    "otp": "code",
}


def build_credentials(strategy: Strategy, payload: Dict[str, Any], registering: bool = False) -> Credentials:
    """
    Build the credential variant for a strategy from a raw payload.

    Unknown keys are ignored; missing keys are left as None for the
    resolver to reject.
    """
    if strategy is Strategy.PASSWORD:
        cls = PasswordRegistration if registering else PasswordLogin
    else:
        cls = {
            Strategy.SOCIAL: SocialLogin,
            Strategy.OTP: OTPConfirmation,
            Strategy.MAGIC_LINK: MagicLinkConfirmation,
            Strategy.BIOMETRIC: BiometricAssertion,
        }[strategy]

    normalized = {PAYLOAD_ALIASES.get(k, k): v for k, v in (payload or {}).items()}
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in normalized.items() if k in names})


# Outcomes

@dataclass
class Authenticated:
    account: Account


@dataclass
class NeedsCreation:
    seed: AccountSeed


@dataclass
class Rejected:
    reason: RejectionReason
    message: str
    field: Optional[str] = None


Outcome = Union[Authenticated, NeedsCreation, Rejected]


def _missing(*names: str) -> Rejected:
    return Rejected(
        RejectionReason.MISSING_FIELD,
        f"Please provide {', '.join(names)}",
        field=names[0]
    )


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require(credentials: Credentials, *names: str) -> Optional[Rejected]:
    missing = [n for n in names if _blank(getattr(credentials, n))]
    return _missing(*missing) if missing else None


class StrategyResolver:
    """
    Base class for strategy resolvers.

    Subclasses implement resolve() for a fresh attempt and
    resolve_existing() for the case where the account already exists.
    The engine calls resolve_existing() directly when a concurrent
    creation beat it to the account.
    """

    strategy: Strategy
    # Generic message for secret-guessing sensitive rejections
    invalid_message = INVALID_EMAIL_OR_PASSWORD

    def __init__(self, repository: AccountRepository, timeout: float = DEFAULT_TIMEOUT):
        self.repository = repository
        self.timeout = timeout

    def resolve(self, credentials: Credentials) -> Outcome:
        raise NotImplementedError

    def resolve_existing(self, credentials: Credentials, account: Account) -> Outcome:
        raise NotImplementedError

    def _find_by_email(self, email: str) -> Optional[Account]:
        return self.repository.find_by_email(email, timeout=self.timeout)


class PasswordResolver(StrategyResolver):
    """Email + password. Strategy-exclusive."""

    strategy = Strategy.PASSWORD

    def __init__(self, repository: AccountRepository, hasher: CredentialHasher, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(repository, timeout)
        self.hasher = hasher
        self._dummy_digest: Optional[str] = None

    def _burn_verify(self, password: str):
        """Spend the same bcrypt time when there is no hash to compare."""
        if self._dummy_digest is None:
            self._dummy_digest = self.hasher.hash("multiauth-timing-equalizer")
        self.hasher.verify(password, self._dummy_digest)

    def _validate(self, credentials: Union[PasswordLogin, PasswordRegistration]) -> Optional[Rejected]:
        names = ("email", "password")
        if isinstance(credentials, PasswordRegistration):
            names += ("first_name", "last_name")
        rejection = _require(credentials, *names)
        if rejection:
            return rejection

        if isinstance(credentials, PasswordRegistration):
            if credentials.phone and not normalize_phone(credentials.phone):
                return Rejected(RejectionReason.INVALID_FORMAT, "Invalid phone number format", field="phone")

        if not normalize_email(credentials.email):
            return Rejected(RejectionReason.INVALID_FORMAT, "Invalid email address", field="email")

        if len(credentials.password) < MIN_PASSWORD_LENGTH:
            return Rejected(
                RejectionReason.INVALID_FORMAT,
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
                field="password"
            )
        if len(credentials.password.encode("utf-8")) > MAX_SECRET_BYTES:
            return Rejected(
                RejectionReason.INVALID_FORMAT,
                f"Password cannot be longer than {MAX_SECRET_BYTES} bytes",
                field="password"
            )
        return None

    def resolve(self, credentials: Union[PasswordLogin, PasswordRegistration]) -> Outcome:
        rejection = self._validate(credentials)
        if rejection:
            return rejection

        email = normalize_email(credentials.email)
        account = self._find_by_email(email)

        if isinstance(credentials, PasswordRegistration):
            if account is not None:
                return self.resolve_existing(credentials, account)
            return NeedsCreation(AccountSeed(
                auth_method="password",
                email=email,
                phone=normalize_phone(credentials.phone) if credentials.phone else None,
                first_name=credentials.first_name.strip(),
                last_name=credentials.last_name.strip(),
                company=credentials.company,
                password_hash=self.hasher.hash(credentials.password)
            ))

        if account is None:
            self._burn_verify(credentials.password)
            return Rejected(RejectionReason.NOT_FOUND, self.invalid_message)
        return self.resolve_existing(credentials, account)

    def resolve_existing(self, credentials: Union[PasswordLogin, PasswordRegistration], account: Account) -> Outcome:
        if isinstance(credentials, PasswordRegistration):
            return Rejected(RejectionReason.ALREADY_EXISTS, "User already exists with this email", field="email")

        if account.auth_method != "password":
            self._burn_verify(credentials.password)
            return Rejected(RejectionReason.STRATEGY_MISMATCH, self.invalid_message)

        if not self.hasher.verify(credentials.password, account.password_hash):
            return Rejected(RejectionReason.BAD_SECRET, self.invalid_message)

        if self.hasher.needs_rehash(account.password_hash):
            account = replace(account, password_hash=self.hasher.hash(credentials.password))
            logger.info(f"Rehashed password for account {account.account_id}")

        return Authenticated(account)


class SocialResolver(StrategyResolver):
    """
    Federated identity (google, github, sso).

    The provider's assertion is authoritative proof of the email, so any
    existing account with that email is authenticated.
    """

    strategy = Strategy.SOCIAL
    invalid_message = "Social authentication failed"

    def __init__(self, repository: AccountRepository, providers: List[str], timeout: float = DEFAULT_TIMEOUT):
        super().__init__(repository, timeout)
        self.providers = [p.lower() for p in providers]
        unknown = [p for p in self.providers if p not in SOCIAL_AUTH_METHODS]
        if unknown:
            raise ValueError(
                f"Unknown social providers: {', '.join(unknown)}. Known: {', '.join(SOCIAL_AUTH_METHODS)}"
            )

    def resolve(self, credentials: SocialLogin) -> Outcome:
        rejection = _require(credentials, "email", "provider", "provider_id")
        if rejection:
            return rejection

        email = normalize_email(credentials.email)
        if not email:
            return Rejected(RejectionReason.INVALID_FORMAT, "Invalid email address", field="email")

        provider = credentials.provider.strip().lower()
        if provider not in self.providers:
            return Rejected(
                RejectionReason.INVALID_FORMAT,
                f"Unsupported provider '{credentials.provider}'. Supported: {', '.join(self.providers)}",
                field="provider"
            )

        account = self._find_by_email(email)
        if account is not None:
            return self.resolve_existing(credentials, account)

        return NeedsCreation(AccountSeed(
            auth_method=provider,
            email=email,
            first_name=(credentials.first_name or "").strip(),
            last_name=(credentials.last_name or "").strip(),
            provider_ids={provider: str(credentials.provider_id)},
            profile=Profile(avatar=credentials.avatar or None)
        ))

    def resolve_existing(self, credentials: SocialLogin, account: Account) -> Outcome:
        provider = credentials.provider.strip().lower()
        known_id = account.provider_ids.get(provider)
        if account.auth_method == provider and known_id and known_id != str(credentials.provider_id):
            logger.warning(f"Provider id mismatch for {provider} on account {account.account_id}")
            return Rejected(RejectionReason.BAD_SECRET, self.invalid_message)

        updated = replace(
            account,
            first_name=account.first_name or (credentials.first_name or "").strip(),
            last_name=account.last_name or (credentials.last_name or "").strip(),
            profile=merge_profile(account.profile, Profile(avatar=credentials.avatar or None))
        )
        return Authenticated(updated)


class OTPResolver(StrategyResolver):
    """Phone + 6-digit code issued by the challenge store."""

    strategy = Strategy.OTP
    invalid_message = INVALID_PHONE_OR_CODE

    def __init__(self, repository: AccountRepository, challenges: ChallengeStore, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(repository, timeout)
        self.challenges = challenges

    def resolve(self, credentials: OTPConfirmation) -> Outcome:
        rejection = _require(credentials, "phone", "code")
        if rejection:
            return rejection

        phone = normalize_phone(credentials.phone)
        if not phone:
            return Rejected(RejectionReason.INVALID_FORMAT, "Invalid phone number format", field="phone")

        code = str(credentials.code).strip()
        if not OTP_PATTERN.match(code):
            return Rejected(RejectionReason.INVALID_FORMAT, "Invalid OTP. Please enter a 6-digit code.", field="code")

        check = self.challenges.check(phone, code, timeout=self.timeout)
        if check is ChallengeCheck.EXPIRED:
            return Rejected(RejectionReason.CHALLENGE_EXPIRED, "Code has expired, please request a new one")
        if check is not ChallengeCheck.OK:
            return Rejected(RejectionReason.CHALLENGE_INVALID, self.invalid_message)

        account = self.repository.find_by_phone(phone, timeout=self.timeout)
        if account is not None:
            return self.resolve_existing(credentials, account)

        return NeedsCreation(AccountSeed(auth_method="otp", phone=phone, otp_verified=True))

    def resolve_existing(self, credentials: OTPConfirmation, account: Account) -> Outcome:
        return Authenticated(replace(account, otp_verified=True))


class MagicLinkResolver(StrategyResolver):
    """Confirmation half of the magic-link flow."""

    strategy = Strategy.MAGIC_LINK
    invalid_message = "Invalid or expired link"

    def __init__(self, repository: AccountRepository, codec: TokenCodec, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(repository, timeout)
        self.codec = codec

    def resolve(self, credentials: MagicLinkConfirmation) -> Outcome:
        if _blank(credentials.token):
            return _missing("token")

        try:
            email = self.codec.verify_magic_link(credentials.token)
        except TokenExpiredError:
            return Rejected(RejectionReason.CHALLENGE_EXPIRED, "Link has expired, please request a new one")
        except TokenVerificationError as e:
            logger.debug(f"Magic link rejected: {e}")
            return Rejected(RejectionReason.CHALLENGE_INVALID, self.invalid_message)

        account = self._find_by_email(email)
        if account is not None:
            return self.resolve_existing(credentials, account)

        return NeedsCreation(AccountSeed(auth_method="magic", email=email))

    def resolve_existing(self, credentials: MagicLinkConfirmation, account: Account) -> Outcome:
        return Authenticated(account)


class BiometricResolver(StrategyResolver):
    """
    Email + biometric assertion.

    The assertion is assumed to have been checked by an external verifier;
    only a bcrypt hash of its digest is stored.
    """

    strategy = Strategy.BIOMETRIC
    invalid_message = INVALID_BIOMETRIC

    def __init__(
        self,
        repository: AccountRepository,
        hasher: CredentialHasher,
        reenroll: bool = True,
        timeout: float = DEFAULT_TIMEOUT
    ):
        super().__init__(repository, timeout)
        self.hasher = hasher
        self.reenroll = reenroll

    def resolve(self, credentials: BiometricAssertion) -> Outcome:
        rejection = _require(credentials, "email", "assertion")
        if rejection:
            return rejection

        email = normalize_email(credentials.email)
        if not email:
            return Rejected(RejectionReason.INVALID_FORMAT, "Invalid email address", field="email")

        account = self._find_by_email(email)
        if account is not None:
            return self.resolve_existing(credentials, account)

        return NeedsCreation(AccountSeed(
            auth_method="biometric",
            email=email,
            biometric_hash=self.hasher.hash(derive_assertion_digest(credentials.assertion))
        ))

    def resolve_existing(self, credentials: BiometricAssertion, account: Account) -> Outcome:
        if account.auth_method != "biometric":
            return Rejected(RejectionReason.STRATEGY_MISMATCH, self.invalid_message)

        digest = derive_assertion_digest(credentials.assertion)
        if self.reenroll:
            return Authenticated(replace(account, biometric_hash=self.hasher.hash(digest)))

        if not self.hasher.verify(digest, account.biometric_hash):
            return Rejected(RejectionReason.BAD_SECRET, self.invalid_message)
        return Authenticated(account)
