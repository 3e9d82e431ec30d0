"""
API dependencies.

Provides dependency injection for the auth engine, session checks and
error-to-HTTP mapping.
"""

import logging
from typing import Optional, Annotated
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from multiauth.config import load_config, Config
from multiauth.services import AuthEngine
from multiauth.auth import Account
from multiauth.errors import AuthError

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

STATUS_BY_CODE = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "duplicate_identity": status.HTTP_409_CONFLICT,
    "invalid_credential": status.HTTP_401_UNAUTHORIZED,
    "challenge_expired": status.HTTP_401_UNAUTHORIZED,
    "challenge_invalid": status.HTTP_401_UNAUTHORIZED,
    "unauthenticated": status.HTTP_401_UNAUTHORIZED,
    "token_expired": status.HTTP_401_UNAUTHORIZED,
    "account_not_found": status.HTTP_404_NOT_FOUND,
    "upstream_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "upstream_timeout": status.HTTP_504_GATEWAY_TIMEOUT,
    "delivery_failed": status.HTTP_502_BAD_GATEWAY,
}


@dataclass
class Services:
    """Container for all services."""
    config: Config
    engine: AuthEngine


# Global services instance (singleton)
_services: Optional[Services] = None


def get_services() -> Services:
    """
    Get or create the services singleton.

    This initializes the engine on first call.
    """
    global _services

    if _services is None:
        logger.info("Initializing services...")

        config = load_config()
        engine = AuthEngine.create(config=config)

        _services = Services(config=config, engine=engine)
        logger.info("Services initialized successfully")

    return _services


def close_services():
    """Drop the services singleton."""
    global _services
    if _services:
        _services = None
        logger.info("Services closed")


# Dependency for getting services
def services_dep() -> Services:
    """FastAPI dependency for services."""
    return get_services()


ServicesDep = Annotated[Services, Depends(services_dep)]


def http_error(error: AuthError) -> HTTPException:
    """Map an AuthError to an HTTPException with a stable body."""
    status_code = STATUS_BY_CODE.get(error.code, status.HTTP_400_BAD_REQUEST)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(status_code=status_code, detail=error.to_dict(), headers=headers)


# Authentication dependencies

def get_bearer_token(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)]
) -> str:
    """
    Extract the bearer token (required).

    Raises 401 if no token is provided.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthenticated", "message": "Access token required"},
            headers={"WWW-Authenticate": "Bearer"}
        )
    return credentials.credentials


BearerToken = Annotated[str, Depends(get_bearer_token)]


async def get_current_account(token: BearerToken, services: ServicesDep) -> Account:
    """
    Get current account from the session token (required).

    Raises 401 for missing/invalid/expired tokens and 404 if the account
    no longer exists.
    """
    try:
        return services.engine.authorize(token)
    except AuthError as e:
        raise http_error(e)


CurrentAccount = Annotated[Account, Depends(get_current_account)]
