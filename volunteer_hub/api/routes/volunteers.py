"""Volunteer roster, profile and affiliation route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.api.auth_dependencies import (
    get_current_user,
    require_leader_or_admin,
    get_affiliation_cache,
)
from volunteer_hub.database.db import get_db_session
from volunteer_hub.models.schemas import ProfileUpdate, AffiliationResponse
from volunteer_hub.services import identity_service, volunteer_service
from volunteer_hub.services.affiliation_cache import AffiliationCache

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/volunteers", response_model=List[dict])
async def list_volunteers(
    user: dict = Depends(require_leader_or_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Everyone, with confirmed signups, hours and waiver status."""
    return await volunteer_service.list_volunteers(session)


@router.put("/api/profile")
async def update_profile(
    payload: ProfileUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Edit the signed-in person's own profile."""
    return await identity_service.update_profile(session, user["id"], **payload.model_dump(exclude_unset=True))


@router.get("/api/affiliations", response_model=List[AffiliationResponse])
async def list_affiliations(
    session: AsyncSession = Depends(get_db_session),
    cache: AffiliationCache = Depends(get_affiliation_cache),
):
    """Team/club options for signup forms."""
    return await cache.get(session)
