"""
Account storage and management.

Stores accounts in a JSON file for simplicity. The engine only depends on
the AccountRepository protocol, so any durable store that enforces the
email/phone unique constraints atomically can replace it.
"""

import json
import logging
import threading
import uuid
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional, List, Dict, Protocol
from dataclasses import dataclass, asdict, field, fields, replace

from .password import normalize_email, normalize_phone

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNTS_FILE = Path(__file__).parent.parent.parent / "data" / "users.json"

SOCIAL_AUTH_METHODS = ("google", "github", "sso")
AUTH_METHODS = ("password",) + SOCIAL_AUTH_METHODS + ("otp", "magic", "biometric")

DEFAULT_TIMEOUT = 5.0


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class RepositoryError(Exception):
    """The backing store failed."""


class RepositoryTimeout(RepositoryError):
    """The backing store did not answer within the caller's timeout."""


class DuplicateAccountError(RepositoryError):
    """A unique constraint (email or phone) would be violated."""

    def __init__(self, field_name: str, value: str):
        self.field_name = field_name
        self.value = value
        super().__init__(f"Account with {field_name} {value} already exists")


class AccountNotFoundError(RepositoryError):
    """No account matches the given identifier."""


@dataclass
class Profile:
    """Optional profile sub-fields."""
    avatar: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Profile":
        data = data or {}
        return cls(**{f.name: data.get(f.name) for f in fields(cls)})


def merge_profile(existing: Profile, incoming: Profile) -> Profile:
    """
    Merge an incoming profile into an existing one.

    Only fills fields the existing profile leaves empty; values the user
    already has are never overwritten by a login.
    """
    updates = {
        f.name: getattr(incoming, f.name)
        for f in fields(Profile)
        if not getattr(existing, f.name) and getattr(incoming, f.name)
    }
    return replace(existing, **updates)


@dataclass
class Account:
    """Account data model."""
    account_id: str
    auth_method: str  # Strategy that created the account, never changes
    email: Optional[str] = None  # None only for phone-only OTP accounts
    phone: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    company: Optional[str] = None
    password_hash: Optional[str] = None  # Present iff auth_method == "password"
    biometric_hash: Optional[str] = None
    provider_ids: Dict[str, str] = field(default_factory=dict)
    is_verified: bool = False
    otp_verified: bool = False
    profile: Profile = field(default_factory=Profile)
    created_at: str = field(default_factory=utcnow)
    updated_at: str = field(default_factory=utcnow)
    last_login: Optional[str] = None
    is_active: bool = True

    def __post_init__(self):
        if self.auth_method not in AUTH_METHODS:
            raise ValueError(f"Unknown auth method: {self.auth_method}")
        if (self.auth_method == "password") != bool(self.password_hash):
            raise ValueError("Password hash must be set if and only if auth method is password")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Account":
        return cls(
            account_id=data["account_id"],
            auth_method=data["auth_method"],
            email=data.get("email"),
            phone=data.get("phone"),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            company=data.get("company"),
            password_hash=data.get("password_hash"),
            biometric_hash=data.get("biometric_hash"),
            provider_ids=data.get("provider_ids", {}),
            is_verified=data.get("is_verified", False),
            otp_verified=data.get("otp_verified", False),
            profile=Profile.from_dict(data.get("profile")),
            created_at=data.get("created_at", utcnow()),
            updated_at=data.get("updated_at", utcnow()),
            last_login=data.get("last_login"),
            is_active=data.get("is_active", True)
        )

    def to_public_dict(self) -> dict:
        """Account summary safe to hand to clients (no secrets)."""
        return {
            "account_id": self.account_id,
            "email": self.email,
            "phone": self.phone,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company": self.company,
            "auth_method": self.auth_method,
            "is_verified": self.is_verified,
            "profile": asdict(self.profile),
            "created_at": self.created_at,
            "last_login": self.last_login,
        }


@dataclass
class AccountSeed:
    """Everything needed to create an account, produced by a resolver."""
    auth_method: str
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    company: Optional[str] = None
    password_hash: Optional[str] = None
    biometric_hash: Optional[str] = None
    provider_ids: Dict[str, str] = field(default_factory=dict)
    otp_verified: bool = False
    profile: Profile = field(default_factory=Profile)


class AccountRepository(Protocol):
    """Operations the engine needs from a user store."""

    def find_by_email(self, email: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[Account]: ...

    def find_by_phone(self, phone: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[Account]: ...

    def find_by_id(self, account_id: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[Account]: ...

    def create(self, seed: AccountSeed, timeout: float = DEFAULT_TIMEOUT) -> Account: ...

    def update(self, account: Account, timeout: float = DEFAULT_TIMEOUT) -> Account: ...


class AccountStore:
    """
    JSON-based account storage.

    Accounts are indexed by account id. Every read-modify-write happens
    under a single lock, so the email/phone unique checks in create() and
    update() are atomic within the process.
    """

    def __init__(self, file_path: Optional[Path] = None):
        """
        Initialize account store.

        Args:
            file_path: Path to accounts JSON file (default: data/users.json)
        """
        self.file_path = file_path or DEFAULT_ACCOUNTS_FILE
        self._lock = threading.Lock()
        self._ensure_file()

    def _ensure_file(self):
        """Ensure the storage file and directory exist."""
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.file_path.exists():
            self._save_all({})

    def _load_all(self) -> Dict[str, dict]:
        """Load all accounts from file."""
        try:
            with open(self.file_path, "r") as f:
                content = f.read()
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise RepositoryError(f"Could not read {self.file_path}: {e}") from e

        if not content.strip():
            return {}
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise RepositoryError(f"Corrupt account file {self.file_path}: {e}") from e

    def _save_all(self, accounts: Dict[str, dict]):
        """Save all accounts to file."""
        try:
            with open(self.file_path, "w") as f:
                json.dump(accounts, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise RepositoryError(f"Could not write {self.file_path}: {e}") from e

    def _acquire(self, timeout: float):
        if not self._lock.acquire(timeout=timeout):
            raise RepositoryTimeout(f"Account store busy for more than {timeout}s")

    def _find(self, key: str, value: str, timeout: float) -> Optional[Account]:
        self._acquire(timeout)
        try:
            accounts = self._load_all()
        finally:
            self._lock.release()

        for data in accounts.values():
            if data.get(key) == value:
                return Account.from_dict(data)
        return None

    @staticmethod
    def _check_unique(accounts: Dict[str, dict], email: Optional[str], phone: Optional[str], exclude_id: Optional[str] = None):
        for account_id, data in accounts.items():
            if account_id == exclude_id:
                continue
            if email and data.get("email") == email:
                raise DuplicateAccountError("email", email)
            if phone and data.get("phone") == phone:
                raise DuplicateAccountError("phone", phone)

    def find_by_email(self, email: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[Account]:
        """
        Get account by email (case-insensitive).

        Returns:
            Account if found, None otherwise
        """
        normalized = normalize_email(email)
        if not normalized:
            return None
        return self._find("email", normalized, timeout)

    def find_by_phone(self, phone: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[Account]:
        normalized = normalize_phone(phone)
        if not normalized:
            return None
        return self._find("phone", normalized, timeout)

    def find_by_id(self, account_id: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[Account]:
        return self._find("account_id", account_id, timeout)

    def create(self, seed: AccountSeed, timeout: float = DEFAULT_TIMEOUT) -> Account:
        """
        Create a new account from a seed.

        Args:
            seed: Account fields produced by a resolver
            timeout: Seconds to wait for the store

        Returns:
            Created Account

        Raises:
            DuplicateAccountError: Email or phone already belongs to an account
            RepositoryTimeout: Store busy for longer than timeout
        """
        email = normalize_email(seed.email) if seed.email else None
        phone = normalize_phone(seed.phone) if seed.phone else None
        if not email and not phone:
            raise ValueError("Account needs an email or a phone")

        account = Account(
            account_id=str(uuid.uuid4()),
            auth_method=seed.auth_method,
            email=email,
            phone=phone,
            first_name=seed.first_name,
            last_name=seed.last_name,
            company=seed.company,
            password_hash=seed.password_hash,
            biometric_hash=seed.biometric_hash,
            provider_ids=dict(seed.provider_ids),
            is_verified=True,
            otp_verified=seed.otp_verified,
            profile=seed.profile,
            last_login=utcnow()
        )

        self._acquire(timeout)
        try:
            accounts = self._load_all()
            self._check_unique(accounts, email, phone)
            accounts[account.account_id] = account.to_dict()
            self._save_all(accounts)
        finally:
            self._lock.release()

        logger.info(f"Created {account.auth_method} account {account.account_id}")
        return account

    def update(self, account: Account, timeout: float = DEFAULT_TIMEOUT) -> Account:
        """
        Update an existing account.

        Raises:
            AccountNotFoundError: If account doesn't exist
            DuplicateAccountError: If the new email/phone belongs to another account
        """
        self._acquire(timeout)
        try:
            accounts = self._load_all()

            if account.account_id not in accounts:
                raise AccountNotFoundError(f"Account {account.account_id} not found")

            stored = accounts[account.account_id]
            if stored["auth_method"] != account.auth_method:
                raise ValueError("Auth method cannot change after creation")

            self._check_unique(accounts, account.email, account.phone, exclude_id=account.account_id)

            account.updated_at = utcnow()
            accounts[account.account_id] = account.to_dict()
            self._save_all(accounts)
        finally:
            self._lock.release()

        logger.debug(f"Updated account {account.account_id}")
        return account

    def list_accounts(self, active_only: bool = True, timeout: float = DEFAULT_TIMEOUT) -> List[Account]:
        """
        List all accounts.

        Store helper for operator tooling and tests; the engine only uses
        the lookups.
        """
        self._acquire(timeout)
        try:
            accounts = self._load_all()
        finally:
            self._lock.release()

        result = [Account.from_dict(data) for data in accounts.values()]
        if active_only:
            result = [a for a in result if a.is_active]
        return result
