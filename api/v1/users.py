"""
User profile endpoints.

Read and update the profile of the account behind the session token.
"""

import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from ..deps import ServicesDep, BearerToken, http_error
from .auth import AuthResponse, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


class ProfileFields(BaseModel):
    model_config = ConfigDict(extra="allow")

    avatar: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None


class ProfileUpdate(BaseModel):
    """Editable account fields. Anything else is rejected by the engine."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    email: Optional[str] = Field(None, description="Only settable when the account has no email")
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    phone: Optional[str] = None
    company: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    profile: Optional[ProfileFields] = None


@router.get("/profile", response_model=AuthResponse)
async def get_profile(token: BearerToken, services: ServicesDep):
    """Get the current user's profile."""
    result = services.engine.get_profile(token)
    if not result.success:
        raise http_error(result.error)
    return AuthResponse(success=True, user=UserResponse(**result.account.to_public_dict()))


@router.put("/profile", response_model=AuthResponse)
async def update_profile(request: ProfileUpdate, token: BearerToken, services: ServicesDep):
    """Update the current user's profile."""
    result = services.engine.update_profile(token, request.model_dump(exclude_none=True))
    if not result.success:
        raise http_error(result.error)
    return AuthResponse(success=True, user=UserResponse(**result.account.to_public_dict()))
