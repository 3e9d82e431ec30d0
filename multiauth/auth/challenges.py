"""
One-time-passcode challenge storage.

Issued OTP codes are kept server-side, keyed by normalized phone, with an
expiry and an attempt budget. Only an HMAC of the code is stored.
"""

import hashlib
import hmac
import json
import logging
import secrets
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol
from dataclasses import dataclass, asdict

from .accounts import RepositoryError, RepositoryTimeout, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_CHALLENGES_FILE = Path(__file__).parent.parent.parent / "data" / "challenges.json"

OTP_LENGTH = 6


def generate_otp() -> str:
    """Generate a uniformly random 6-digit code."""
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


class ChallengeCheck(str, Enum):
    """Outcome of comparing a submitted code with the stored challenge."""
    OK = "ok"
    MISSING = "missing"
    EXPIRED = "expired"
    MISMATCH = "mismatch"


@dataclass
class OTPChallenge:
    """Stored OTP challenge for one phone."""
    phone: str
    code_digest: str
    expires_at: float
    attempts_left: int
    created_at: float


class ChallengeStore(Protocol):
    """Server-side store for outstanding OTP challenges."""

    def issue(self, phone: str, code: str, ttl: int, max_attempts: int, timeout: float = DEFAULT_TIMEOUT) -> OTPChallenge: ...

    def check(self, phone: str, code: str, timeout: float = DEFAULT_TIMEOUT) -> ChallengeCheck: ...


class ChallengeFileStore:
    """
    JSON-file backed OTP challenge store.

    A new challenge for a phone replaces the outstanding one. A successful
    check consumes the challenge; a mismatch burns one attempt and removes
    the challenge once the budget is exhausted.
    """

    def __init__(
        self,
        secret_key: str,
        file_path: Optional[Path] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        self.file_path = file_path or DEFAULT_CHALLENGES_FILE
        self._key = secret_key.encode("utf-8")
        self.clock = clock or time.time
        self._lock = threading.Lock()

    def _digest(self, phone: str, code: str) -> str:
        return hmac.new(self._key, f"{phone}:{code}".encode("utf-8"), hashlib.sha256).hexdigest()

    def _ensure_data_dir(self):
        self.file_path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> Dict[str, OTPChallenge]:
        try:
            if not self.file_path.exists():
                return {}
            content = self.file_path.read_text()
        except OSError as e:
            raise RepositoryError(f"Could not read challenges: {e}") from e

        if not content.strip():
            return {}
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise RepositoryError(f"Corrupt challenges file: {e}") from e
        return {phone: OTPChallenge(**entry) for phone, entry in data.items()}

    def _save(self, challenges: Dict[str, OTPChallenge]):
        now = self.clock()
        # Drop anything already expired while we are writing anyway
        data = {phone: asdict(c) for phone, c in challenges.items() if c.expires_at > now}
        try:
            self._ensure_data_dir()
            self.file_path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise RepositoryError(f"Could not write challenges: {e}") from e

    def _acquire(self, timeout: float):
        if not self._lock.acquire(timeout=timeout):
            raise RepositoryTimeout(f"Challenge store busy for more than {timeout}s")

    def issue(self, phone: str, code: str, ttl: int, max_attempts: int, timeout: float = DEFAULT_TIMEOUT) -> OTPChallenge:
        """Store a new challenge for phone, replacing any outstanding one."""
        now = self.clock()
        challenge = OTPChallenge(
            phone=phone,
            code_digest=self._digest(phone, code),
            expires_at=now + ttl,
            attempts_left=max_attempts,
            created_at=now
        )

        self._acquire(timeout)
        try:
            challenges = self._load()
            challenges[phone] = challenge
            self._save(challenges)
        finally:
            self._lock.release()

        logger.info(f"Issued OTP challenge for {phone}, expires in {ttl}s")
        return challenge

    def check(self, phone: str, code: str, timeout: float = DEFAULT_TIMEOUT) -> ChallengeCheck:
        """
        Compare a submitted code against the outstanding challenge.

        Returns:
            ChallengeCheck describing the outcome
        """
        self._acquire(timeout)
        try:
            challenges = self._load()
            challenge = challenges.get(phone)

            if challenge is None:
                return ChallengeCheck.MISSING

            if self.clock() >= challenge.expires_at:
                del challenges[phone]
                self._save(challenges)
                return ChallengeCheck.EXPIRED

            if hmac.compare_digest(challenge.code_digest, self._digest(phone, code)):
                del challenges[phone]
                self._save(challenges)
                return ChallengeCheck.OK

            challenge.attempts_left -= 1
            if challenge.attempts_left <= 0:
                del challenges[phone]
                logger.warning(f"OTP attempts exhausted for {phone}")
            self._save(challenges)
            return ChallengeCheck.MISMATCH
        finally:
            self._lock.release()
