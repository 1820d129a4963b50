"""Domain route handlers (admin only, apart from reads)."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.api.auth_dependencies import get_current_user, require_admin, get_dispatcher
from volunteer_hub.database.db import get_db_session
from volunteer_hub.models.schemas import DomainCreate, DomainUpdate, AssignLeaderRequest
from volunteer_hub.services import catalog_service, enrollment_service
from volunteer_hub.services.auth_provider import AuthProviderClient, get_auth_provider

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/domains", response_model=List[dict])
async def list_domains(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List domains with leaders and role counts."""
    return await catalog_service.list_domains(session)


@router.get("/api/domains/{domain_id}")
async def get_domain(
    domain_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a domain with its roles."""
    return await catalog_service.get_domain(session, domain_id)


@router.post("/api/domains")
async def create_domain(
    payload: DomainCreate,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a domain."""
    return await catalog_service.create_domain(session, payload.model_dump())


@router.put("/api/domains/{domain_id}")
async def update_domain(
    domain_id: int,
    payload: DomainUpdate,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a domain."""
    return await catalog_service.update_domain(session, domain_id, payload.model_dump(exclude_unset=True))


@router.delete("/api/domains/{domain_id}")
async def delete_domain(
    domain_id: int,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a domain that has no roles."""
    await catalog_service.delete_domain(session, domain_id)
    return {"success": True}


@router.post("/api/domains/{domain_id}/leader")
async def assign_leader(
    domain_id: int,
    payload: AssignLeaderRequest,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    provider: AuthProviderClient = Depends(get_auth_provider),
    dispatcher=Depends(get_dispatcher),
):
    """
    Set the domain leader.

    With an email the person is provisioned (or promoted) as a leader first;
    with a leader_id an existing person is assigned; with neither the leader is cleared.
    """
    if payload.email:
        return await enrollment_service.create_leader(
            session,
            provider,
            dispatcher,
            caller=user,
            domain_id=domain_id,
            email=payload.email,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
        )
    domain = await catalog_service.assign_leader(session, domain_id, payload.leader_id)
    return {"user_id": payload.leader_id, "created": False, "domain": domain}
