"""
API routes - combined router from all area modules.

Shared infrastructure (limiter) lives here; every sub-router imports what it
needs from this package.
"""

import os

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from volunteer_hub.api.routes.auth import router as auth_router  # noqa: E402
from volunteer_hub.api.routes.roles import router as roles_router  # noqa: E402
from volunteer_hub.api.routes.domains import router as domains_router  # noqa: E402
from volunteer_hub.api.routes.signups import router as signups_router  # noqa: E402
from volunteer_hub.api.routes.waivers import router as waivers_router  # noqa: E402
from volunteer_hub.api.routes.volunteers import router as volunteers_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(roles_router)
router.include_router(domains_router)
router.include_router(signups_router)
router.include_router(waivers_router)
router.include_router(volunteers_router)
