"""
Authentication endpoints.

Handles registration, login, challenge send/confirm and token checks for
every strategy.
"""

import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from multiauth.auth.resolvers import Strategy

from ..deps import ServicesDep, CurrentAccount, http_error

logger = logging.getLogger(__name__)

router = APIRouter()


# Request/Response models

class CredentialsRequest(BaseModel):
    """
    Strategy payload.

    Fields are optional here; the engine reports exactly which ones are
    missing for the chosen strategy.
    """
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = Field(None, description="Email address")
    password: Optional[str] = Field(None, description="Password (min 6 chars)")
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    phone: Optional[str] = Field(None, description="Phone number (e.g., +15551234567)")
    company: Optional[str] = None
    provider: Optional[str] = Field(None, description="Social provider (google, github, sso)")
    provider_id: Optional[str] = Field(None, alias="providerId")
    avatar: Optional[str] = None
    code: Optional[str] = Field(None, alias="otp", description="6-digit OTP code")
    token: Optional[str] = Field(None, description="Magic-link token")
    assertion: Optional[str] = Field(None, alias="biometricData")

    def payload(self) -> dict:
        return self.model_dump(exclude_none=True)


class ChallengeRequest(BaseModel):
    """Destination for an OTP code (phone) or magic link (email)."""
    destination: str = Field(..., description="Phone number for otp, email for magic_link")


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class ProfileResponse(BaseModel):
    avatar: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None


class UserResponse(BaseModel):
    """Account summary. Never includes secrets."""
    account_id: str
    email: Optional[str]
    phone: Optional[str]
    first_name: str
    last_name: str
    company: Optional[str] = None
    auth_method: str
    is_verified: bool
    profile: ProfileResponse
    created_at: str
    last_login: Optional[str] = None


class AuthResponse(BaseModel):
    """Authentication response with tokens and user info."""
    success: bool
    tokens: Optional[TokenResponse] = None
    user: Optional[UserResponse] = None


class ChallengeResponse(BaseModel):
    success: bool
    destination: str
    expires_in: int


def _auth_response(result) -> AuthResponse:
    if not result.success:
        raise http_error(result.error)

    return AuthResponse(
        success=True,
        tokens=TokenResponse(**result.tokens.to_dict()) if result.tokens else None,
        user=UserResponse(**result.account.to_public_dict()) if result.account else None
    )


# Endpoints

@router.post("/register/{strategy}", response_model=AuthResponse)
async def register(strategy: Strategy, request: CredentialsRequest, services: ServicesDep):
    """
    Register a new account with the given strategy.

    Returns a session token on success.
    """
    result = services.engine.register(strategy, request.payload())
    return _auth_response(result)


@router.post("/login/{strategy}", response_model=AuthResponse)
async def login(strategy: Strategy, request: CredentialsRequest, services: ServicesDep):
    """
    Login with the given strategy.

    Returns a session token on success.
    """
    result = services.engine.login(strategy, request.payload())
    return _auth_response(result)


@router.post("/challenge/{strategy}", response_model=ChallengeResponse)
async def request_challenge(strategy: Strategy, request: ChallengeRequest, services: ServicesDep):
    """
    Send an OTP code or magic link.

    The code/link is delivered out of band and never echoed back.
    """
    result = services.engine.request_challenge(strategy, request.destination)
    if not result.success:
        raise http_error(result.error)
    return ChallengeResponse(success=True, destination=result.destination, expires_in=result.expires_in)


@router.post("/confirm/{strategy}", response_model=AuthResponse)
async def confirm_challenge(strategy: Strategy, request: CredentialsRequest, services: ServicesDep):
    """Confirm an OTP code or magic-link token."""
    result = services.engine.confirm_challenge(strategy, request.payload())
    return _auth_response(result)


@router.get("/confirm/magic_link", response_model=AuthResponse)
async def confirm_magic_link(token: str, services: ServicesDep):
    """Target of the emailed magic link."""
    result = services.engine.confirm_challenge(Strategy.MAGIC_LINK, token)
    return _auth_response(result)


@router.get("/verify-token", response_model=AuthResponse)
async def verify_token(account: CurrentAccount):
    """Check a session token and return its account."""
    return AuthResponse(success=True, user=UserResponse(**account.to_public_dict()))
