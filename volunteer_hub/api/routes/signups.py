"""Signup route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.api.auth_dependencies import get_current_user, get_dispatcher
from volunteer_hub.api.routes import limiter
from volunteer_hub.database.db import get_db_session
from volunteer_hub.database.models import PersonRole
from volunteer_hub.models.schemas import (
    SignupCreate,
    VolunteerSignupRequest,
    NewUserSignupRequest,
    SignupResultResponse,
)
from volunteer_hub.services import enrollment_service, signup_service
from volunteer_hub.services.auth_provider import AuthProviderClient, get_auth_provider
from volunteer_hub.services.errors import DependencyUnavailable

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/signups/me", response_model=List[dict])
async def get_my_signups(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Confirmed signups of the signed-in volunteer."""
    return await signup_service.get_my_signups(session, user["id"])


@router.post("/api/signups")
async def create_signup(
    payload: SignupCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    dispatcher=Depends(get_dispatcher),
):
    """Signed-in volunteer takes a seat on a role."""
    signup = await signup_service.create_signup_with_fk_retry(
        session, user["id"], payload.role_id, phone=payload.phone
    )
    enrollment_service.submit_signup_notifications(
        dispatcher, signup["role"], user["id"], user["email"], user.get("first_name"), user.get("last_name")
    )
    return signup


@router.post("/api/signups/{signup_id}/cancel")
async def cancel_signup(
    signup_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a signup. Volunteers cancel their own; admins cancel any."""
    owner = None if user.get("role") == PersonRole.ADMIN.value else user["id"]
    return await signup_service.cancel_signup(session, signup_id, volunteer_id=owner)


@router.post("/api/volunteer-signup", response_model=SignupResultResponse)
@limiter.limit("10/minute")
async def volunteer_signup(
    request: Request,
    payload: VolunteerSignupRequest,
    session: AsyncSession = Depends(get_db_session),
    provider: AuthProviderClient = Depends(get_auth_provider),
    dispatcher=Depends(get_dispatcher),
):
    """Public signup form: create the account, sign the waiver, reserve the seat."""
    pii = payload.model_dump(exclude={"role_id"})
    return await enrollment_service.self_signup(
        session,
        provider,
        dispatcher,
        pii,
        payload.role_id,
        ip_address=request.client.host if request.client else None,
    )


@router.post("/api/signups/new-user")
@limiter.limit("10/minute")
async def create_signup_for_new_user(
    request: Request,
    payload: NewUserSignupRequest,
    session: AsyncSession = Depends(get_db_session),
    provider: AuthProviderClient = Depends(get_auth_provider),
):
    """Seat reservation for an account created in the last two minutes that has no session yet."""
    waiver = None
    if payload.volunteer_signature_name:
        waiver = {
            "signature_name": payload.volunteer_signature_name,
            "ip_address": request.client.host if request.client else None,
        }
        if payload.waiver_minor:
            waiver.update(
                parent_guardian_name=payload.parent_guardian_name,
                parent_guardian_email=payload.parent_guardian_email,
                parent_guardian_phone=payload.parent_guardian_phone,
                parent_signature_name=payload.parent_signature_name,
            )
    try:
        signup = await enrollment_service.create_signup_for_new_user(
            session, provider, payload.user_id, payload.role_id, phone=payload.phone, waiver=waiver
        )
    except Exception as e:
        if signup_service.is_fk_violation(e):
            raise DependencyUnavailable("Your profile is still being created. Please retry.") from e
        raise
    return {"ok": True, "signup": signup}
