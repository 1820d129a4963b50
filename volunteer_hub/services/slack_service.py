"""
Slack notifications for new signups, posted with the Web API (chat.postMessage).
"""

import os
import logging
from typing import Optional, Dict
import httpx
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from dotenv import load_dotenv

from volunteer_hub.database.models import Role, Signup, Person, SignupStatus
from volunteer_hub.services import settings_service

load_dotenv()

logger = logging.getLogger(__name__)

SLACK_API_URL = "https://slack.com/api/chat.postMessage"
SLACK_BOT_TOKEN = os.getenv("SLACK_BOT_TOKEN")
SLACK_SIGNUP_CHANNEL_ID = os.getenv("SLACK_SIGNUP_CHANNEL_ID")
SLACK_TIMEOUT_SECONDS = 5.0


async def is_enabled(session: Optional[AsyncSession] = None) -> bool:
    """Slack posting can be switched off from the settings table or ENABLE_SLACK."""
    try:
        return await settings_service.get_bool_setting(
            session, "enable_slack", env_var="ENABLE_SLACK", default=True
        )
    except Exception as e:
        logger.warning(f"Error getting ENABLE_SLACK from settings, using default: {e}")
        return settings_service.get_bool_env("ENABLE_SLACK", default=True)


async def get_fill_counts(session: AsyncSession, role_id: int) -> Dict:
    """
    Current fill numbers for one role and for the whole event.

    Returns:
        Dict with role_name, role_filled, role_total, all_filled, all_total
    """
    role = (await session.execute(select(Role).where(Role.id == role_id))).scalar_one_or_none()

    role_filled = (
        await session.execute(
            select(func.count(Signup.id)).where(
                Signup.role_id == role_id, Signup.status == SignupStatus.CONFIRMED.value
            )
        )
    ).scalar_one()
    all_filled = (
        await session.execute(
            select(func.count(Signup.id)).where(Signup.status == SignupStatus.CONFIRMED.value)
        )
    ).scalar_one()
    all_total = (await session.execute(select(func.coalesce(func.sum(Role.positions_total), 0)))).scalar_one()

    return {
        "role_name": role.name if role else None,
        "role_filled": role_filled or 0,
        "role_total": role.positions_total if role else 0,
        "all_filled": all_filled or 0,
        "all_total": all_total or 0,
    }


async def resolve_volunteer(session: AsyncSession, volunteer_id: Optional[str]) -> Dict:
    """Name and email for the volunteer, looked up when the caller did not have them."""
    if not volunteer_id:
        return {"name": None, "email": None}
    person = (await session.execute(select(Person).where(Person.id == volunteer_id))).scalar_one_or_none()
    if person is None:
        return {"name": None, "email": None}
    name = " ".join(p for p in (person.first_name, person.last_name) if p).strip() or person.email
    return {"name": name, "email": person.email}


def build_signup_message(
    volunteer_name: Optional[str],
    volunteer_email: Optional[str],
    role_name: Optional[str],
    role_filled: int,
    role_total: int,
    all_filled: int,
    all_total: int,
) -> str:
    """Message text for a new signup. Totals of zero display as 1."""
    role_name = role_name or "Unknown role"
    display_name = (volunteer_name or "").strip() or volunteer_email or "A volunteer"
    display_email = f" ({volunteer_email})" if volunteer_email else ""
    role_line = f"{role_filled}/{role_total or 1} of {role_name} filled"
    all_line = f"{all_filled}/{all_total or 1} of all volunteer roles filled!"
    return (
        f":raising_hand: New volunteer signup: *{display_name}*{display_email} "
        f"signed up for *{role_name}*.\n\n{role_line}\n{all_line}"
    )


async def post_message(
    text: str,
    channel: Optional[str] = None,
    token: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """
    Post a message to the signup channel.

    Returns:
        True if Slack accepted it (or Slack is not configured), False on failure
    """
    channel = channel or SLACK_SIGNUP_CHANNEL_ID
    token = token or SLACK_BOT_TOKEN
    if not token or not channel:
        logger.warning("SLACK_BOT_TOKEN or SLACK_SIGNUP_CHANNEL_ID not configured. Slack notification skipped.")
        return True

    try:
        async with httpx.AsyncClient(timeout=SLACK_TIMEOUT_SECONDS, transport=transport) as client:
            resp = await client.post(
                SLACK_API_URL,
                headers={"Authorization": f"Bearer {token}"},
                json={"channel": channel, "text": text},
            )
        data = resp.json() if resp.content else {}
        if resp.status_code < 300 and data.get("ok"):
            logger.info(f"Slack signup notification posted to {channel}")
            return True
        logger.warning(f"Slack API error {resp.status_code}: {data.get('error')}")
        return False
    except Exception as e:
        logger.error(f"Slack delivery failed: {e}")
        return False
