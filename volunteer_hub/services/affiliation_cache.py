"""
Cached list of team/club affiliations for signup forms.

The list rarely changes, so it is read once and kept for ``ttl_seconds``.
The cache is an ordinary object owned by whoever creates it (the app keeps
one on ``app.state``); ``invalidate`` drops it and ``refresh`` reloads it.
"""

import time
import asyncio
import logging
from typing import Optional, List, Dict, Callable
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.database.models import TeamClubAffiliation

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


async def load_affiliations(session: AsyncSession) -> List[Dict]:
    """All affiliations ordered by sort_order, then name."""
    result = await session.execute(
        select(TeamClubAffiliation).order_by(TeamClubAffiliation.sort_order.asc(), TeamClubAffiliation.name.asc())
    )
    return [{"id": a.id, "name": a.name, "sort_order": a.sort_order} for a in result.scalars().all()]


class AffiliationCache:
    """Time-limited in-memory copy of the affiliation list."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._items: Optional[List[Dict]] = None
        self._loaded_at: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def is_fresh(self) -> bool:
        return self._items is not None and (self._clock() - self._loaded_at) < self.ttl_seconds

    def options(self) -> List[Dict]:
        """Whatever is cached right now, possibly empty. Never touches the database."""
        return list(self._items or [])

    def invalidate(self) -> None:
        self._items = None
        self._loaded_at = 0.0

    async def refresh(self, session: AsyncSession) -> List[Dict]:
        """Reload from the database regardless of freshness."""
        async with self._lock:
            self._items = await load_affiliations(session)
            self._loaded_at = self._clock()
            logger.debug(f"Loaded {len(self._items)} affiliations")
            return list(self._items)

    async def get(self, session: AsyncSession) -> List[Dict]:
        """Cached list, reloaded when missing or expired."""
        if self.is_fresh:
            return self.options()
        return await self.refresh(session)
