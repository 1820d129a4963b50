"""
Runtime toggles for the volunteer hub.

A row in the ``settings`` table wins over the environment, so an admin can
switch email or Slack off for a live event without a redeploy.
"""

import os
import logging
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from dotenv import load_dotenv

from volunteer_hub.database.models import Setting

load_dotenv()

logger = logging.getLogger(__name__)

TRUE_VALUES = ("true", "1", "yes", "on")


def _as_bool(value: str) -> bool:
    return value.strip().lower() in TRUE_VALUES


def get_bool_env(key: str, default: bool = True) -> bool:
    """Boolean environment flag; unset means ``default``."""
    value = os.getenv(key)
    return default if value is None else _as_bool(value)


async def get_setting(session: AsyncSession, key: str) -> Optional[str]:
    """Stored override for ``key``, or None."""
    result = await session.execute(select(Setting.value).where(Setting.key == key))
    return result.scalar_one_or_none()


async def set_setting(session: AsyncSession, key: str, value: str) -> None:
    """Store (or replace) the override for ``key``."""
    await session.merge(Setting(key=key, value=value))
    await session.commit()
    logger.info(f"Setting {key} updated")


async def get_setting_with_fallback(
    session: Optional[AsyncSession],
    key: str,
    env_var: Optional[str] = None,
    default: Optional[str] = None,
) -> Optional[str]:
    """
    Resolve a setting: settings table, then ``env_var``, then ``default``.

    A database error while reading the override is logged and treated as "no
    override", so a flaky store never turns off notifications by accident.
    """
    if session is not None:
        try:
            stored = await get_setting(session, key)
        except Exception as e:
            logger.warning(f"Could not read setting {key}, falling back to environment: {e}")
            stored = None
        if stored is not None:
            return stored

    if env_var and os.getenv(env_var) is not None:
        return os.getenv(env_var)
    return default


async def get_bool_setting(
    session: Optional[AsyncSession],
    key: str,
    env_var: Optional[str] = None,
    default: bool = True,
) -> bool:
    """Boolean form of :func:`get_setting_with_fallback`."""
    value = await get_setting_with_fallback(session, key, env_var)
    return default if value is None else _as_bool(value)
