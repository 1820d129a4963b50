"""Role catalog route handlers."""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.api.auth_dependencies import (
    get_current_user,
    get_current_user_optional,
    require_admin,
    require_leader_or_admin,
    get_dispatcher,
)
from volunteer_hub.database.db import get_db_session
from volunteer_hub.models.schemas import (
    RoleCreate,
    RoleUpdate,
    AddVolunteerRequest,
    AddVolunteerResponse,
    DashboardStatsResponse,
)
from volunteer_hub.services import catalog_service, enrollment_service
from volunteer_hub.services.auth_provider import AuthProviderClient, get_auth_provider
from volunteer_hub.services.errors import NotAuthorized

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/roles", response_model=List[dict])
async def list_roles(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    session: AsyncSession = Depends(get_db_session),
):
    """List roles (public), optionally between two dates."""
    return await catalog_service.list_roles(session, start_date=start_date, end_date=end_date)


@router.get("/api/roles/stats", response_model=DashboardStatsResponse)
async def get_dashboard_stats(
    user: dict = Depends(require_leader_or_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Fill totals for the dashboard."""
    return await catalog_service.dashboard_stats(session)


@router.get("/api/roles/{role_id}")
async def get_role(
    role_id: int,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a role. Volunteer contact details are only shown to admins and the role's leaders."""
    role = await catalog_service.get_role(session, role_id)
    if user is None:
        role["signups"] = []
        return role
    try:
        await catalog_service.authorize_role_manager(session, user, role_id)
    except NotAuthorized:
        role["signups"] = [s for s in role["signups"] if s["volunteer"] and s["volunteer"]["id"] == user["id"]]
    return role


@router.post("/api/roles")
async def create_role(
    payload: RoleCreate,
    user: dict = Depends(require_leader_or_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a role (admins anywhere, leaders inside their domain)."""
    await catalog_service.authorize_domain_leader(session, user, payload.domain_id)
    return await catalog_service.create_role(session, payload.model_dump(), created_by=user["id"])


@router.put("/api/roles/{role_id}")
async def update_role(
    role_id: int,
    payload: RoleUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a role."""
    await catalog_service.authorize_role_manager(session, user, role_id)
    return await catalog_service.update_role(session, role_id, payload.model_dump(exclude_unset=True))


@router.post("/api/roles/{role_id}/duplicate")
async def duplicate_role(
    role_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Copy a role without its signups."""
    await catalog_service.authorize_role_manager(session, user, role_id)
    return await catalog_service.duplicate_role(session, role_id, created_by=user["id"])


@router.delete("/api/roles/{role_id}")
async def delete_role(
    role_id: int,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a role with no confirmed signups (admin only)."""
    await catalog_service.delete_role(session, role_id)
    return {"success": True}


@router.post("/api/roles/{role_id}/volunteers", response_model=AddVolunteerResponse)
async def add_volunteer(
    role_id: int,
    payload: AddVolunteerRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    provider: AuthProviderClient = Depends(get_auth_provider),
    dispatcher=Depends(get_dispatcher),
):
    """Sign someone else up for a role, creating their account if needed."""
    return await enrollment_service.add_volunteer_to_role(
        session,
        provider,
        dispatcher,
        caller=user,
        role_id=role_id,
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        team_club_affiliation_id=payload.team_club_affiliation_id,
    )
