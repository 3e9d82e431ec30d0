"""
System endpoints.

Reports which strategies the running engine accepts.
"""

from fastapi import APIRouter

from multiauth.auth.resolvers import Strategy

from ..deps import ServicesDep

router = APIRouter()


@router.get("/status")
async def get_status(services: ServicesDep):
    """Enabled strategies, social providers and challenge lifetimes."""
    auth = services.config.auth
    return {
        "service": "multiauth-api",
        "strategies": [s.value for s in Strategy],
        "social_providers": auth.social_providers,
        "session_ttl_seconds": auth.session_ttl_seconds,
        "otp_ttl_seconds": auth.otp_ttl_seconds,
        "magic_link_ttl_seconds": auth.magic_link_ttl_seconds,
    }
