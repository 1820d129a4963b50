"""Sign-in link, session and sign-out route handlers."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.api.auth_dependencies import get_session_gate
from volunteer_hub.api.routes import limiter
from volunteer_hub.database.db import get_db_session
from volunteer_hub.models.schemas import MagicLinkRequest, SessionResponse, SignOutResponse
from volunteer_hub.services import auth_service
from volunteer_hub.services.auth_provider import AuthProviderClient, get_auth_provider
from volunteer_hub.services.email_service import SITE_URL
from volunteer_hub.services.session_gate import SessionGate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/auth/magic-link")
@limiter.limit("5/minute")
async def send_magic_link(
    request: Request,
    payload: MagicLinkRequest,
    session: AsyncSession = Depends(get_db_session),
    provider: AuthProviderClient = Depends(get_auth_provider),
):
    """Email a one-time sign-in link. Same answer whether or not the account exists."""
    await auth_service.send_magic_link(
        session, provider, payload.email, payload.redirect_to or f"{SITE_URL}/"
    )
    return {"success": True, "message": "Check your email for a sign-in link."}


@router.get("/api/auth/session", response_model=SessionResponse)
async def get_session(
    gate: SessionGate = Depends(get_session_gate),
    session: AsyncSession = Depends(get_db_session),
):
    """Current account, profile and admin flag. Signed-out callers get empty fields."""
    if gate.profile is not None:
        await gate.record_login(session)
    return gate.snapshot()


@router.post("/api/auth/sign-out", response_model=SignOutResponse)
async def sign_out(gate: SessionGate = Depends(get_session_gate)):
    """Revoke the session. Always succeeds locally even if the provider does not answer."""
    remote_revoked = await gate.sign_out()
    return {"success": True, "remote_revoked": remote_revoked}
