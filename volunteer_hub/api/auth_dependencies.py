"""
Authentication dependencies for FastAPI routes.
"""

from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.database.db import get_db_session
from volunteer_hub.database.models import PersonRole
from volunteer_hub.services.affiliation_cache import AffiliationCache
from volunteer_hub.services.auth_provider import AuthProviderClient, get_auth_provider
from volunteer_hub.services.errors import DependencyUnavailable
from volunteer_hub.services.notification_dispatcher import get_notification_dispatcher
from volunteer_hub.services.session_gate import SessionGate

security = HTTPBearer(auto_error=False)


async def get_session_gate(
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    provider: AuthProviderClient = Depends(get_auth_provider),
) -> SessionGate:
    """Session gate resolved from the bearer token (signed out if there is none)."""
    gate = SessionGate(provider)
    await gate.apply_session(session, credentials.credentials if credentials else None)
    return gate


async def get_current_user(gate: SessionGate = Depends(get_session_gate)) -> dict:
    """
    Dependency to get the current signed-in person's profile.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
        DependencyUnavailable: If the profile row has not appeared yet
    """
    if not gate.is_signed_in:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if gate.profile is None:
        raise DependencyUnavailable("Your profile is still being set up. Please try again in a moment.")
    return gate.profile


async def get_current_user_optional(gate: SessionGate = Depends(get_session_gate)) -> Optional[dict]:
    """Profile of the caller, or None when not signed in."""
    if not gate.is_signed_in:
        return None
    return gate.profile


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    """Require an admin."""
    if user.get("role") != PersonRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


async def require_leader_or_admin(user: dict = Depends(get_current_user)) -> dict:
    """Require a volunteer leader or an admin. Per-role checks happen in the services."""
    if user.get("role") not in (PersonRole.ADMIN.value, PersonRole.VOLUNTEER_LEADER.value):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Leader access required")
    return user


def get_dispatcher():
    """Notification dispatcher used by the signup flows."""
    return get_notification_dispatcher()


def get_affiliation_cache(request: Request) -> AffiliationCache:
    """The affiliation cache owned by the running app."""
    return request.app.state.affiliation_cache
