"""
Authentication engine.

Orchestrates the strategy resolvers, applies the account-unification
rules, persists accounts and mints session tokens. Also verifies session
tokens for protected operations.

Every public operation returns a result object; failures carry a typed
AuthError instead of raising, so the API layer can map them to responses.
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union
from dataclasses import dataclass, fields, replace

from ..auth.accounts import (
    Account,
    AccountNotFoundError,
    AccountRepository,
    AccountStore,
    DuplicateAccountError,
    Profile,
    RepositoryError,
    RepositoryTimeout,
)
from ..auth.challenges import ChallengeFileStore, ChallengeStore, generate_otp
from ..auth.password import CredentialHasher, normalize_email, normalize_phone
from ..auth.resolvers import (
    PAYLOAD_ALIASES,
    Authenticated,
    BiometricAssertion,
    BiometricResolver,
    Credentials,
    MagicLinkConfirmation,
    MagicLinkResolver,
    NeedsCreation,
    OTPConfirmation,
    OTPResolver,
    PasswordLogin,
    PasswordRegistration,
    PasswordResolver,
    Rejected,
    RejectionReason,
    SocialLogin,
    SocialResolver,
    Strategy,
    StrategyResolver,
    build_credentials,
)
from ..auth.tokens import TokenCodec, TokenExpiredError, TokenVerificationError
from ..config import AuthConfig, Config, load_config
from ..errors import (
    AccountNotFound,
    AuthError,
    ChallengeExpired,
    ChallengeInvalid,
    DeliveryFailed,
    DuplicateIdentity,
    InvalidCredential,
    TokenExpired,
    Unauthenticated,
    UpstreamTimeout,
    UpstreamUnavailable,
    ValidationError,
)
from ..notifier import DeliveryError, LoggingNotifier, Notifier, NotifierTimeout

logger = logging.getLogger(__name__)

STRATEGY_BY_CREDENTIALS = {
    PasswordLogin: Strategy.PASSWORD,
    PasswordRegistration: Strategy.PASSWORD,
    SocialLogin: Strategy.SOCIAL,
    OTPConfirmation: Strategy.OTP,
    MagicLinkConfirmation: Strategy.MAGIC_LINK,
    BiometricAssertion: Strategy.BIOMETRIC,
}

ERROR_BY_REASON = {
    RejectionReason.MISSING_FIELD: ValidationError,
    RejectionReason.INVALID_FORMAT: ValidationError,
    RejectionReason.ALREADY_EXISTS: DuplicateIdentity,
    RejectionReason.CHALLENGE_EXPIRED: ChallengeExpired,
    RejectionReason.CHALLENGE_INVALID: ChallengeInvalid,
}

CHALLENGE_STRATEGIES = (Strategy.OTP, Strategy.MAGIC_LINK)

ACCOUNT_UPDATE_FIELDS = {"email", "first_name", "last_name", "phone", "company"}
PROFILE_UPDATE_FIELDS = {f.name for f in fields(Profile)}


@dataclass
class SessionTokens:
    """Session credential handed to the client."""
    access_token: str
    expires_in: int
    token_type: str = "bearer"

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in
        }


@dataclass
class AuthResult:
    """Authentication result."""
    success: bool
    tokens: Optional[SessionTokens] = None
    account: Optional[Account] = None
    error: Optional[AuthError] = None
    created: bool = False

    def to_dict(self) -> dict:
        result = {"success": self.success}
        if self.tokens:
            result["tokens"] = self.tokens.to_dict()
        if self.account:
            result["user"] = self.account.to_public_dict()
        if self.error:
            result["error"] = self.error.to_dict()
        return result


@dataclass
class ChallengeResult:
    """Outcome of a challenge send. Never carries the code or link."""
    success: bool
    destination: Optional[str] = None
    expires_in: Optional[int] = None
    error: Optional[AuthError] = None

    def to_dict(self) -> dict:
        result = {"success": self.success}
        if self.destination:
            result["destination"] = self.destination
            result["expires_in"] = self.expires_in
        if self.error:
            result["error"] = self.error.to_dict()
        return result


class AuthEngine:
    """
    Multi-strategy authentication engine.

    Handles:
    - Registration and login for every strategy
    - OTP / magic-link challenge send and confirmation
    - Session verification for protected operations
    - Profile read and update for the session's account

    Holds no per-request state; instances sharing a repository, challenge
    store and signing secret are interchangeable.
    """

    def __init__(
        self,
        config: AuthConfig,
        repository: AccountRepository,
        challenges: ChallengeStore,
        notifier: Notifier,
        clock: Optional[Callable[[], float]] = None,
        hasher: Optional[CredentialHasher] = None
    ):
        """
        Initialize the engine.

        Args:
            config: Auth settings (signing secret, TTLs, timeouts)
            repository: Account store
            challenges: OTP challenge store
            notifier: Delivers OTP codes and magic links
            clock: Returns the current unix time (default: time.time)
            hasher: Credential hasher (default: bcrypt with config rounds)
        """
        self.config = config
        self.repository = repository
        self.challenges = challenges
        self.notifier = notifier
        self.clock = clock or time.time
        self.hasher = hasher or CredentialHasher(rounds=config.bcrypt_rounds)
        self.codec = TokenCodec(
            config.secret_key,
            clock=self.clock,
            session_ttl=config.session_ttl_seconds,
            magic_link_ttl=config.magic_link_ttl_seconds
        )

        timeout = config.repository_timeout
        self.resolvers: Dict[Strategy, StrategyResolver] = {
            Strategy.PASSWORD: PasswordResolver(repository, self.hasher, timeout=timeout),
            Strategy.SOCIAL: SocialResolver(repository, config.social_providers, timeout=timeout),
            Strategy.OTP: OTPResolver(repository, challenges, timeout=timeout),
            Strategy.MAGIC_LINK: MagicLinkResolver(repository, self.codec, timeout=timeout),
            Strategy.BIOMETRIC: BiometricResolver(
                repository, self.hasher, reenroll=config.biometric_reenroll, timeout=timeout
            ),
        }

    @classmethod
    def create(
        cls,
        config: Optional[Config] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], float]] = None
    ) -> "AuthEngine":
        """
        Factory method wiring the JSON stores from configuration.

        Args:
            config: Optional config (loads from env if not provided)
            notifier: Optional notifier (logs deliveries if not provided)
            clock: Optional clock override
        """
        cfg = config or load_config()
        repository = AccountStore(file_path=cfg.storage.users_file)
        challenges = ChallengeFileStore(
            cfg.auth.secret_key,
            file_path=cfg.storage.challenges_file,
            clock=clock
        )
        return cls(cfg.auth, repository, challenges, notifier or LoggingNotifier(), clock=clock)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now_iso(self) -> str:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat()

    @staticmethod
    def _parse_strategy(strategy: Union[str, Strategy]) -> Strategy:
        try:
            return Strategy(strategy)
        except ValueError:
            supported = ", ".join(s.value for s in Strategy)
            raise ValidationError(
                f"Unsupported strategy '{strategy}'. Supported: {supported}",
                field="strategy"
            )

    @contextmanager
    def _upstream(self):
        """Translate repository failures into AuthErrors."""
        try:
            yield
        except RepositoryTimeout as e:
            logger.error(f"Repository timed out: {e}")
            raise UpstreamTimeout() from e
        except AccountNotFoundError as e:
            raise AccountNotFound() from e
        except DuplicateAccountError as e:
            raise DuplicateIdentity(
                f"User already exists with this {e.field_name}",
                field=e.field_name
            ) from e
        except RepositoryError as e:
            logger.error(f"Repository failure: {e}")
            raise UpstreamUnavailable() from e

    def _rejection_error(self, resolver: StrategyResolver, rejected: Rejected) -> AuthError:
        error_cls = ERROR_BY_REASON.get(rejected.reason)
        if error_cls is None:
            # Identity-guessing sensitive: one message whatever failed
            logger.info(f"{resolver.strategy.value} credentials rejected ({rejected.reason.value})")
            return InvalidCredential(resolver.invalid_message)
        return error_cls(rejected.message, field=rejected.field)

    def _find_by_field(self, field_name: str, value: str) -> Optional[Account]:
        timeout = self.config.repository_timeout
        if field_name == "phone":
            return self.repository.find_by_phone(value, timeout=timeout)
        return self.repository.find_by_email(value, timeout=timeout)

    def _settle(self, resolver: StrategyResolver, credentials: Credentials, outcome) -> tuple:
        """
        Turn a resolver outcome into a persisted account.

        Returns:
            Tuple of (account, created)
        """
        if isinstance(outcome, Rejected):
            raise self._rejection_error(resolver, outcome)

        if isinstance(outcome, Authenticated):
            return outcome.account, False

        if not isinstance(outcome, NeedsCreation):
            raise TypeError(f"Unknown resolver outcome: {outcome!r}")

        try:
            account = self.repository.create(outcome.seed, timeout=self.config.repository_timeout)
            return account, True
        except DuplicateAccountError as e:
            field_name, value = e.field_name, e.value

        # Lost a creation race: first writer wins, retry as existing account once
        logger.info(f"Concurrent creation on {field_name}, resolving existing account")
        existing = self._find_by_field(field_name, value)
        retry = resolver.resolve_existing(credentials, existing) if existing else None

        if isinstance(retry, Authenticated):
            return retry.account, False
        if isinstance(retry, Rejected) and retry.reason is not RejectionReason.ALREADY_EXISTS:
            raise self._rejection_error(resolver, retry)
        raise DuplicateIdentity(f"User already exists with this {field_name}", field=field_name)

    def _issue(self, account: Account) -> SessionTokens:
        token = self.codec.issue_session(account.account_id, auth_method=account.auth_method)
        return SessionTokens(access_token=token, expires_in=self.config.session_ttl_seconds)

    def _deliver(self, destination: str, payload: str):
        try:
            self.notifier.deliver(destination, payload, timeout=self.config.notifier_timeout)
        except NotifierTimeout as e:
            logger.error(f"Delivery to {destination} timed out: {e}")
            raise UpstreamTimeout("Delivery timed out, please retry") from e
        except DeliveryError as e:
            logger.error(f"Delivery to {destination} failed: {e}")
            raise DeliveryFailed() from e

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self, credentials: Credentials) -> AuthResult:
        """
        Run one authentication attempt.

        Dispatches to the resolver for the credential variant, creates the
        account when needed, records the login and mints a session.

        Args:
            credentials: One of the credential variants

        Returns:
            AuthResult with session tokens if successful
        """
        strategy = STRATEGY_BY_CREDENTIALS.get(type(credentials))
        if strategy is None:
            raise TypeError(f"Unsupported credentials: {type(credentials).__name__}")
        resolver = self.resolvers[strategy]

        try:
            with self._upstream():
                outcome = resolver.resolve(credentials)
                account, created = self._settle(resolver, credentials, outcome)

                account.last_login = self._now_iso()
                account = self.repository.update(account, timeout=self.config.repository_timeout)
        except AuthError as e:
            return AuthResult(success=False, error=e)

        tokens = self._issue(account)
        action = "Created" if created else "Authenticated"
        logger.info(f"{action} {account.auth_method} account {account.account_id} via {strategy.value}")
        return AuthResult(success=True, tokens=tokens, account=account, created=created)

    def _attempt(self, strategy: Union[str, Strategy], payload: Dict[str, Any], registering: bool) -> AuthResult:
        try:
            parsed = self._parse_strategy(strategy)
        except AuthError as e:
            return AuthResult(success=False, error=e)
        return self.authenticate(build_credentials(parsed, payload, registering=registering))

    def register(self, strategy: Union[str, Strategy], payload: Dict[str, Any]) -> AuthResult:
        """
        Register a new account.

        For the password strategy an existing email is a DuplicateIdentity
        error. Every other strategy is find-or-create, so register behaves
        like login.
        """
        return self._attempt(strategy, payload, registering=True)

    def login(self, strategy: Union[str, Strategy], payload: Dict[str, Any]) -> AuthResult:
        """Log in with any strategy."""
        return self._attempt(strategy, payload, registering=False)

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------

    def request_challenge(self, strategy: Union[str, Strategy], destination: str) -> ChallengeResult:
        """
        Send an OTP code (phone) or magic link (email).

        The secret goes only to the notifier; the result never contains it.
        """
        try:
            parsed = self._parse_strategy(strategy)

            if parsed is Strategy.OTP:
                phone = normalize_phone(destination)
                if not phone:
                    raise ValidationError("Please provide a valid phone number", field="phone")

                code = generate_otp()
                ttl = self.config.otp_ttl_seconds
                with self._upstream():
                    self.challenges.issue(
                        phone, code, ttl, self.config.otp_max_attempts,
                        timeout=self.config.repository_timeout
                    )
                self._deliver(phone, f"Your verification code is {code}")
                logger.info(f"OTP sent to {phone}")
                return ChallengeResult(success=True, destination=phone, expires_in=ttl)

            if parsed is Strategy.MAGIC_LINK:
                email = normalize_email(destination)
                if not email:
                    raise ValidationError("Please provide a valid email address", field="email")

                token = self.codec.issue_magic_link(email)
                link = f"{self.config.magic_link_url}?token={token}"
                self._deliver(email, link)
                logger.info(f"Magic link sent to {email}")
                return ChallengeResult(
                    success=True, destination=email, expires_in=self.config.magic_link_ttl_seconds
                )

            raise ValidationError(f"Strategy '{parsed.value}' does not use challenges", field="strategy")

        except AuthError as e:
            return ChallengeResult(success=False, error=e)

    def confirm_challenge(
        self,
        strategy: Union[str, Strategy],
        payload: Union[str, Dict[str, Any]]
    ) -> AuthResult:
        """
        Confirm an OTP code or magic-link token and sign the user in.

        Args:
            strategy: "otp" or "magic_link"
            payload: {"phone", "code"} for OTP; token string or {"token"} for magic links
        """
        try:
            parsed = self._parse_strategy(strategy)
            if parsed not in CHALLENGE_STRATEGIES:
                raise ValidationError(f"Strategy '{parsed.value}' does not use challenges", field="strategy")
            if isinstance(payload, str):
                if parsed is Strategy.OTP:
                    raise ValidationError("Please provide phone, code", field="phone")
                payload = {"token": payload}
        except AuthError as e:
            return AuthResult(success=False, error=e)

        return self.authenticate(build_credentials(parsed, payload))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def authorize(self, token: str) -> Account:
        """
        Resolve the account behind a session token.

        Raises:
            TokenExpired: Session lapsed
            Unauthenticated: Token malformed, mis-signed or wrong type
            AccountNotFound: Subject no longer exists
        """
        try:
            account_id = self.codec.verify(token)
        except TokenExpiredError as e:
            raise TokenExpired() from e
        except TokenVerificationError as e:
            logger.debug(f"Session token rejected: {e}")
            raise Unauthenticated("Invalid or expired token") from e

        with self._upstream():
            account = self.repository.find_by_id(account_id, timeout=self.config.repository_timeout)

        if account is None:
            raise AccountNotFound()
        if not account.is_active:
            raise Unauthenticated("Account is deactivated")
        return account

    def verify_session(self, token: str) -> AuthResult:
        """Result-object form of authorize()."""
        try:
            account = self.authorize(token)
        except AuthError as e:
            return AuthResult(success=False, error=e)
        return AuthResult(success=True, account=account)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, token: str) -> AuthResult:
        """Account summary for the session's account."""
        return self.verify_session(token)

    def update_profile(self, token: str, updates: Dict[str, Any]) -> AuthResult:
        """
        Update names, phone, company and profile sub-fields.

        Email can only be set on an account that has none (phone-only OTP
        accounts); once set it cannot change. Auth method and secrets are
        never editable here.
        """
        try:
            account = self.authorize(token)

            updates = {PAYLOAD_ALIASES.get(k, k): v for k, v in (updates or {}).items()}
            profile_updates = updates.pop("profile", None) or {}
            if not isinstance(profile_updates, dict):
                raise ValidationError("Profile must be an object", field="profile")
            profile_updates = dict(profile_updates)

            for key in list(updates):
                if key in PROFILE_UPDATE_FIELDS:
                    profile_updates[key] = updates.pop(key)

            unknown = sorted((set(updates) - ACCOUNT_UPDATE_FIELDS) | (set(profile_updates) - PROFILE_UPDATE_FIELDS))
            if unknown:
                raise ValidationError(f"Cannot update: {', '.join(unknown)}", field=unknown[0])

            not_text = sorted(
                k for k, v in list(updates.items()) + list(profile_updates.items())
                if v is not None and not isinstance(v, str)
            )
            if not_text:
                raise ValidationError(f"{not_text[0]} must be a string", field=not_text[0])

            if "email" in updates:
                email = normalize_email(updates["email"])
                if not email:
                    raise ValidationError("Invalid email address", field="email")
                if account.email and email != account.email:
                    raise ValidationError("Email cannot be changed once set", field="email")
                updates["email"] = email

            if "phone" in updates:
                phone = normalize_phone(updates["phone"])
                if not phone:
                    raise ValidationError("Invalid phone number format", field="phone")
                updates["phone"] = phone

            for name in ("first_name", "last_name"):
                if name in updates:
                    updates[name] = (updates[name] or "").strip()

            account = replace(account, **updates, profile=replace(account.profile, **profile_updates))
            with self._upstream():
                account = self.repository.update(account, timeout=self.config.repository_timeout)

        except AuthError as e:
            return AuthResult(success=False, error=e)

        logger.info(f"Profile updated for account {account.account_id}")
        return AuthResult(success=True, account=account)
