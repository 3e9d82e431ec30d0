"""
Pytest configuration and shared fixtures.

This module provides common fixtures for testing:
- Hashing and session tokens
- Account and challenge storage
- A controllable clock and a recording notifier
- The auth engine and API client
"""

import os
import sys
import json
import tempfile
from pathlib import Path
from typing import Generator, List, Tuple

import pytest
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before imports
os.environ["JWT_SECRET_KEY"] = "test_jwt_secret_key_for_testing_only_32bytes!"
os.environ["AUTH_BCRYPT_ROUNDS"] = "4"

from multiauth.auth import AccountStore, ChallengeFileStore, CredentialHasher, TokenCodec
from multiauth.config import AuthConfig, Config, StorageConfig
from multiauth.services import AuthEngine


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture(scope="session")
def test_config():
    """Test configuration values."""
    return {
        "jwt_secret": "test_jwt_secret_key_for_testing_only_32bytes!",
        "test_email": "a@x.com",
        "test_phone": "+15551234567",
        "test_password": "secret1",
        "first_name": "A",
        "last_name": "B",
    }


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingNotifier:
    """Notifier that keeps every delivery, or fails on demand."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.fail_with = None

    def deliver(self, destination: str, payload: str, timeout: float) -> None:
        if self.fail_with:
            raise self.fail_with
        self.sent.append((destination, payload))

    def last_code(self) -> str:
        return self.sent[-1][1].split()[-1]

    def last_token(self) -> str:
        return self.sent[-1][1].split("token=", 1)[1]


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def temp_data_dir() -> Generator[Path, None, None]:
    """Create a temporary data directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def auth_config(test_config) -> AuthConfig:
    """Auth settings with a cheap work factor."""
    return AuthConfig(
        secret_key=test_config["jwt_secret"],
        session_ttl_seconds=3600,
        magic_link_ttl_seconds=900,
        magic_link_url="http://test/api/v1/auth/confirm/magic_link",
        otp_ttl_seconds=300,
        otp_max_attempts=3,
        bcrypt_rounds=4,
        social_providers=["google", "github", "sso"],
        biometric_reenroll=True,
        repository_timeout=2.0,
        notifier_timeout=2.0,
    )


@pytest.fixture
def full_config(auth_config, temp_data_dir) -> Config:
    return Config(
        auth=auth_config,
        storage=StorageConfig(
            users_file=temp_data_dir / "users.json",
            challenges_file=temp_data_dir / "challenges.json",
        )
    )


# =============================================================================
# Building blocks
# =============================================================================

@pytest.fixture
def hasher() -> CredentialHasher:
    """Create a CredentialHasher with the minimum work factor."""
    return CredentialHasher(rounds=4)


@pytest.fixture
def codec(test_config, clock) -> TokenCodec:
    """Create a TokenCodec with test secret and frozen clock."""
    return TokenCodec(test_config["jwt_secret"], clock=clock, session_ttl=3600, magic_link_ttl=900)


@pytest.fixture
def temp_user_file() -> Generator[Path, None, None]:
    """Create a temporary file for account storage."""
    with tempfile.NamedTemporaryFile(
        mode='w', suffix='.json', delete=False
    ) as f:
        json.dump({}, f)
        temp_path = Path(f.name)

    yield temp_path

    # Cleanup
    if temp_path.exists():
        temp_path.unlink()


@pytest.fixture
def account_store(temp_user_file) -> AccountStore:
    """Create an AccountStore with temporary file."""
    return AccountStore(file_path=temp_user_file)


@pytest.fixture
def challenge_store(test_config, temp_data_dir, clock) -> ChallengeFileStore:
    return ChallengeFileStore(
        test_config["jwt_secret"],
        file_path=temp_data_dir / "challenges.json",
        clock=clock
    )


# =============================================================================
# Engine
# =============================================================================

@pytest.fixture
def engine(auth_config, account_store, challenge_store, notifier, clock, hasher) -> AuthEngine:
    """Engine wired to temporary stores, frozen clock and recording notifier."""
    return AuthEngine(
        auth_config,
        account_store,
        challenge_store,
        notifier,
        clock=clock,
        hasher=hasher
    )


@pytest.fixture
def registered(engine, test_config):
    """A password account registered through the engine."""
    result = engine.register("password", {
        "email": test_config["test_email"],
        "password": test_config["test_password"],
        "first_name": test_config["first_name"],
        "last_name": test_config["last_name"],
    })
    assert result.success, result.error
    return result


# =============================================================================
# API Client Fixtures
# =============================================================================

@pytest.fixture
def api_app():
    """Create FastAPI app for testing."""
    from api.main import app
    return app


@pytest.fixture
def api_client(api_app) -> TestClient:
    """Create synchronous test client for API."""
    return TestClient(api_app)


@pytest.fixture
def services(full_config, engine):
    """Services container backed by the test engine."""
    from api.deps import Services
    return Services(config=full_config, engine=engine)
