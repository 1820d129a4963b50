"""
Passwordless sign-in: issue a one-time link and email it.
"""

import asyncio
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.services import email_service, identity_service
from volunteer_hub.services.auth_provider import AuthProviderClient
from volunteer_hub.services.errors import DependencyUnavailable

logger = logging.getLogger(__name__)

MAGIC_LINK_TIMEOUT_SECONDS = 15
WAKING_UP_MESSAGE = "The server may be waking up. Please wait a moment and try again."


async def _issue_and_send(provider: AuthProviderClient, email: str, redirect_to: str) -> bool:
    link = await provider.generate_magic_link(email, redirect_to)
    message = email_service.build_magic_link_login(link.action_link)
    return await email_service.send_email(email, message["subject"], message["html"])


async def send_magic_link(
    session: AsyncSession,
    provider: AuthProviderClient,
    email: str,
    redirect_to: str,
    timeout: float = MAGIC_LINK_TIMEOUT_SECONDS,
) -> bool:
    """
    Email a sign-in link to ``email``.

    Unknown addresses get the same answer as known ones and no email, so the
    endpoint does not reveal who has an account.

    Returns:
        True when the request was handled

    Raises:
        ValidationFailed: Malformed email
        DependencyUnavailable: The provider or the email service did not answer in time
    """
    email = identity_service.normalize_email(email)

    person = await identity_service.get_person_by_email(session, email)
    if person is None:
        logger.info(f"Magic link requested for unknown email {email}; nothing sent")
        return True

    try:
        sent = await asyncio.wait_for(_issue_and_send(provider, email, redirect_to), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"Magic link for {email} timed out after {timeout}s")
        raise DependencyUnavailable(WAKING_UP_MESSAGE)

    if not sent:
        raise DependencyUnavailable("Failed to send the sign-in email. Please try again.")
    logger.info(f"Magic link sent to {email}")
    return True
