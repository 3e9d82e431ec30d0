"""Configuration module for the multi-strategy auth engine."""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import List
from dotenv import load_dotenv

load_dotenv()

DATA_DIR = Path(__file__).parent.parent / "data"

DEFAULT_SECRET_KEY = "multiauth-secret-key-change-in-production"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class AuthConfig:
    """Session, challenge and strategy settings."""
    secret_key: str = field(default_factory=lambda: os.getenv("JWT_SECRET_KEY", DEFAULT_SECRET_KEY))

    session_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("AUTH_SESSION_TTL_SECONDS", str(86400 * 7))))
    magic_link_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("AUTH_MAGIC_LINK_TTL_SECONDS", "900")))
    magic_link_url: str = field(default_factory=lambda: os.getenv("AUTH_MAGIC_LINK_URL", "http://localhost:8000/api/v1/auth/confirm/magic_link"))

    otp_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("AUTH_OTP_TTL_SECONDS", "300")))
    otp_max_attempts: int = field(default_factory=lambda: int(os.getenv("AUTH_OTP_MAX_ATTEMPTS", "5")))

    # bcrypt work factor
    bcrypt_rounds: int = field(default_factory=lambda: int(os.getenv("AUTH_BCRYPT_ROUNDS", "12")))

    social_providers: List[str] = field(default_factory=lambda: [
        p.strip().lower() for p in os.getenv("AUTH_SOCIAL_PROVIDERS", "google,github,sso").split(",") if p.strip()
    ])
    biometric_reenroll: bool = field(default_factory=lambda: _env_bool("AUTH_BIOMETRIC_REENROLL", "true"))

    # Upper bounds for collaborator calls (seconds)
    repository_timeout: float = field(default_factory=lambda: float(os.getenv("AUTH_REPOSITORY_TIMEOUT_SECONDS", "5")))
    notifier_timeout: float = field(default_factory=lambda: float(os.getenv("AUTH_NOTIFIER_TIMEOUT_SECONDS", "10")))


@dataclass
class StorageConfig:
    """Where the JSON stores live."""
    users_file: Path = field(default_factory=lambda: Path(os.getenv("USERS_FILE", str(DATA_DIR / "users.json"))))
    challenges_file: Path = field(default_factory=lambda: Path(os.getenv("CHALLENGES_FILE", str(DATA_DIR / "challenges.json"))))


@dataclass
class Config:
    """Main configuration container."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def load_config() -> Config:
    """Load configuration from environment variables."""
    return Config()
