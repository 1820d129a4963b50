"""Waiver route handlers."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.api.auth_dependencies import get_current_user, require_admin, get_dispatcher
from volunteer_hub.database.db import get_db_session
from volunteer_hub.models.schemas import WaiverUpdate, WaiverSignRequest, WaiverStatusResponse
from volunteer_hub.services import waiver_service
from volunteer_hub.services.notification_dispatcher import ParentGuardianWaiverSignedEmail

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/waiver")
async def get_waiver(session: AsyncSession = Depends(get_db_session)):
    """Current waiver text and version (public)."""
    return await waiver_service.get_current_waiver(session)


@router.put("/api/waiver")
async def update_waiver(
    payload: WaiverUpdate,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Replace the waiver text; bumps the version so everyone re-signs."""
    return await waiver_service.update_waiver_text(session, payload.waiver_text)


@router.get("/api/waivers/status", response_model=WaiverStatusResponse)
async def get_waiver_status(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Whether the signed-in volunteer has signed the current version."""
    signed = await waiver_service.check_waiver_status(session, user["id"])
    current = await waiver_service.get_current_waiver(session)
    return {"signed": signed, "current_version": current["version"]}


@router.post("/api/waivers/sign")
async def sign_waiver(
    request: Request,
    payload: WaiverSignRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    dispatcher=Depends(get_dispatcher),
):
    """Sign the current waiver. Failures are reported, not swallowed."""
    parent_info = payload.model_dump(exclude={"signature_name"})
    waiver = await waiver_service.sign_waiver(
        session,
        user["id"],
        payload.signature_name,
        ip_address=request.client.host if request.client else None,
        parent_info=parent_info,
    )
    if payload.parent_guardian_email and payload.parent_signature_name:
        dispatcher.submit(
            ParentGuardianWaiverSignedEmail(
                to=payload.parent_guardian_email,
                parent_guardian_name=payload.parent_guardian_name,
                volunteer_first_name=user.get("first_name"),
                volunteer_last_name=user.get("last_name"),
            )
        )
    return waiver
