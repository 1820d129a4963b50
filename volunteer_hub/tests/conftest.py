"""
Shared pytest configuration for volunteer hub tests.

Uses an in-memory SQLite database (aiosqlite) with foreign keys enforced, so
the registrar's foreign-key retry path behaves like it does on PostgreSQL.
"""

import os

os.environ.setdefault("ENV", "test")

import asyncio  # noqa: E402
import uuid  # noqa: E402
from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from volunteer_hub.database.db import Base  # noqa: E402
from volunteer_hub.database.models import Person, PersonRole, Role, Domain  # noqa: E402
from volunteer_hub.services.auth_provider import (  # noqa: E402
    ProviderUser,
    ProviderSession,
    SignUpResult,
    MagicLink,
)
from volunteer_hub.utils.datetime_utils import utcnow  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Fresh in-memory database per test. StaticPool keeps every session on one connection."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool, echo=False)
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)

    async with engine.begin() as conn:
        from volunteer_hub.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own session (the Slack delivery path) must see the test database
    from volunteer_hub.database import db

    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Database session bound to the per-test engine."""
    async_session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session_maker() as session:
        yield session


# ---------------------------------------------------------------------------
# Factories (return plain ids so rollbacks inside services never expire them)
# ---------------------------------------------------------------------------


@pytest.fixture
def make_person(db_session):
    async def _make_person(email=None, role=PersonRole.VOLUNTEER, first_name="Test", last_name="Volunteer", **fields):
        person = Person(
            id=str(uuid.uuid4()),
            email=email or f"{uuid.uuid4().hex[:10]}@example.com",
            first_name=first_name,
            last_name=last_name,
            role=PersonRole(role).value,
            **fields,
        )
        db_session.add(person)
        await db_session.commit()
        return person.id

    return _make_person


@pytest.fixture
def make_domain(db_session):
    async def _make_domain(name="Course Support", leader_id=None):
        domain = Domain(name=name, leader_id=leader_id)
        db_session.add(domain)
        await db_session.commit()
        return domain.id

    return _make_domain


@pytest.fixture
def make_role(db_session):
    async def _make_role(name="Water Station 1", positions_total=3, **fields):
        role = Role(name=name, positions_total=positions_total, **fields)
        db_session.add(role)
        await db_session.commit()
        return role.id

    return _make_role


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeAuthProvider:
    """
    In-memory stand-in for the hosted auth provider.

    Like the provider's trigger, it writes a profiles row for every account it
    creates, unless ``materialize_profiles`` is off (a trigger that lags).
    """

    def __init__(self, session, materialize_profiles=True, issue_sessions=False):
        self.session = session
        self.materialize_profiles = materialize_profiles
        self.issue_sessions = issue_sessions
        self.users = {}
        self.tokens = {}
        self.created_emails = []
        self.magic_links = []
        self.sign_out_calls = []
        self.sign_out_delay = 0
        self.sign_out_error = None
        self.magic_link_delay = 0

    def add_user(self, user_id, email, age_seconds=3600, token=None):
        """Register an account that already exists on the provider side."""
        user = ProviderUser(
            id=user_id,
            email=email,
            created_at=(utcnow() - timedelta(seconds=age_seconds)).isoformat(),
        )
        self.users[user_id] = user
        if token:
            self.tokens[token] = user
        return user

    async def _create(self, email, metadata):
        user = self.add_user(str(uuid.uuid4()), email, age_seconds=0)
        user.user_metadata = dict(metadata)
        self.created_emails.append(email)
        if self.materialize_profiles:
            self.session.add(
                Person(
                    id=user.id,
                    email=email,
                    first_name=metadata.get("first_name") or None,
                    last_name=metadata.get("last_name") or None,
                    role=metadata.get("role") or PersonRole.VOLUNTEER.value,
                )
            )
            await self.session.commit()
        return user

    async def create_user(self, email, password, metadata):
        return await self._create(email, metadata)

    async def sign_up(self, email, password, metadata, redirect_to=None):
        user = await self._create(email, metadata)
        if not self.issue_sessions:
            return SignUpResult(user=user)
        token = f"access-{user.id}"
        self.tokens[token] = user
        return SignUpResult(
            user=user,
            session=ProviderSession(access_token=token, refresh_token=f"refresh-{user.id}", user=user),
        )

    async def get_user(self, user_id):
        return self.users.get(user_id)

    async def get_session_user(self, access_token):
        return self.tokens.get(access_token)

    async def generate_magic_link(self, email, redirect_to):
        if self.magic_link_delay:
            await asyncio.sleep(self.magic_link_delay)
        self.magic_links.append((email, redirect_to))
        return MagicLink(action_link=f"https://auth.example.test/verify?email={email}")

    async def sign_out(self, access_token, scope="global"):
        self.sign_out_calls.append(scope)
        if scope == "global":
            if self.sign_out_delay:
                await asyncio.sleep(self.sign_out_delay)
            if self.sign_out_error:
                raise self.sign_out_error


class RecordingDispatcher:
    """Dispatcher that only records what was submitted."""

    def __init__(self):
        self.jobs = []

    def submit(self, job):
        self.jobs.append(job)

    def of_type(self, job_type):
        return [job for job in self.jobs if isinstance(job, job_type)]


@pytest.fixture
def auth_provider(db_session):
    return FakeAuthProvider(db_session)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()
