"""
Session/profile gate: turns an access token into the caller's profile.

A freshly created account may not have its profile row yet, so the lookup is
retried a few times before giving up.
"""

import asyncio
import logging
from typing import Optional, Dict
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.database.models import Person, PersonRole
from volunteer_hub.services import identity_service
from volunteer_hub.services.auth_provider import AuthProviderClient, ProviderUser
from volunteer_hub.utils.datetime_utils import utcnow
from volunteer_hub.utils.retry import FixedDelayRetry

logger = logging.getLogger(__name__)

PROFILE_RETRY = FixedDelayRetry(max_attempts=5, delay_seconds=0.5)
SIGN_OUT_TIMEOUT_SECONDS = 5


class SessionGate:
    """Authentication state for one client session."""

    def __init__(
        self,
        provider: AuthProviderClient,
        retry: FixedDelayRetry = PROFILE_RETRY,
        sign_out_timeout: float = SIGN_OUT_TIMEOUT_SECONDS,
    ):
        self.provider = provider
        self.retry = retry
        self.sign_out_timeout = sign_out_timeout
        self.access_token: Optional[str] = None
        self.user: Optional[ProviderUser] = None
        self.profile: Optional[Dict] = None

    @property
    def is_admin(self) -> bool:
        return bool(self.profile) and self.profile.get("role") == PersonRole.ADMIN.value

    @property
    def is_leader(self) -> bool:
        return bool(self.profile) and self.profile.get("role") == PersonRole.VOLUNTEER_LEADER.value

    @property
    def is_signed_in(self) -> bool:
        return self.user is not None

    def clear(self) -> None:
        self.access_token = None
        self.user = None
        self.profile = None

    def snapshot(self) -> Dict:
        return {
            "user": self.user.model_dump() if self.user else None,
            "profile": self.profile,
            "is_admin": self.is_admin,
        }

    async def apply_session(self, session: AsyncSession, access_token: Optional[str]) -> Dict:
        """
        Resolve the account and profile behind ``access_token``.

        Called on every sign-in, token refresh and page load. An unknown or
        expired token leaves the gate signed out. The profile may still be None
        if the row has not shown up after the retries.
        """
        if not access_token:
            self.clear()
            return self.snapshot()

        user = await self.provider.get_session_user(access_token)
        if user is None:
            self.clear()
            return self.snapshot()

        self.access_token = access_token
        self.user = user
        self.profile = await self.retry.poll(
            lambda: identity_service.get_person_by_id(session, user.id)
        )
        if self.profile is None:
            logger.warning(f"No profile row for signed-in user {user.id}")
        return self.snapshot()

    async def refresh(self, session: AsyncSession) -> Dict:
        """Re-resolve the current token (after sign-up or a profile change)."""
        return await self.apply_session(session, self.access_token)

    async def record_login(self, session: AsyncSession) -> None:
        """Stamp last_login on the profile."""
        if not self.user:
            return
        await session.execute(update(Person).where(Person.id == self.user.id).values(last_login=utcnow()))
        await session.commit()

    async def sign_out(self) -> bool:
        """
        Revoke the session remotely, bounded by a timeout.

        Local state is cleared no matter what. If the remote revoke times out
        or fails, a local-scope revoke is attempted as a fallback.

        Returns:
            True if the remote revoke succeeded
        """
        token = self.access_token
        revoked = False
        try:
            if token:
                await asyncio.wait_for(self.provider.sign_out(token), timeout=self.sign_out_timeout)
            revoked = True
        except asyncio.TimeoutError:
            logger.error(f"Sign out timed out after {self.sign_out_timeout}s")
        except Exception as e:
            logger.error(f"Sign out failed: {e}")
        finally:
            self.clear()

        if not revoked and token:
            try:
                await asyncio.wait_for(
                    self.provider.sign_out(token, scope="local"), timeout=self.sign_out_timeout
                )
            except Exception as e:
                logger.warning(f"Local sign out fallback failed: {e}")
        return revoked
