"""
Identity provisioning: find or create the account behind an email address.

Accounts are passwordless. The provider insists on a password at creation,
so a random one is generated and thrown away; people sign in with magic links.
"""

import logging
import secrets
from typing import Optional, Dict
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.database.models import Person, PersonRole
from volunteer_hub.services.auth_provider import AuthProviderClient
from volunteer_hub.services.errors import ValidationFailed, NotFound
from volunteer_hub.utils.retry import FixedDelayRetry

logger = logging.getLogger(__name__)

# The profile row is written by a provider-side trigger shortly after the account
IDENTITY_VISIBILITY_RETRY = FixedDelayRetry(max_attempts=20, delay_seconds=0.25)

BACKFILL_FIELDS = ("first_name", "last_name", "phone", "team_club_affiliation_id")


def normalize_email(email: Optional[str]) -> str:
    """Trim and lowercase an email address."""
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationFailed("A valid email address is required")
    return email


def _clean(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def generate_temporary_password() -> str:
    """Random credential that is never shown to anyone."""
    return secrets.token_urlsafe(32)


def person_to_dict(person: Person) -> Dict:
    """Convert a Person ORM instance to a dictionary."""
    return {
        "id": person.id,
        "email": person.email,
        "first_name": person.first_name,
        "last_name": person.last_name,
        "phone": person.phone,
        "role": person.role,
        "emergency_contact_name": person.emergency_contact_name,
        "emergency_contact_phone": person.emergency_contact_phone,
        "team_club_affiliation_id": person.team_club_affiliation_id,
        "created_at": person.created_at.isoformat() if person.created_at else None,
        "updated_at": person.updated_at.isoformat() if person.updated_at else None,
    }


def display_name(person: Optional[Dict], fallback: str = "") -> str:
    """'First Last', falling back to the email or the given fallback."""
    if not person:
        return fallback
    name = " ".join(p for p in (person.get("first_name"), person.get("last_name")) if p).strip()
    return name or person.get("email") or fallback


async def _get_person_row(session: AsyncSession, person_id: str) -> Optional[Person]:
    result = await session.execute(
        select(Person).where(Person.id == person_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_person_by_id(session: AsyncSession, person_id: str) -> Optional[Dict]:
    """
    Get a person by identity id.

    Args:
        session: Database session
        person_id: Identity id issued by the auth provider

    Returns:
        Person dictionary or None if not found
    """
    person = await _get_person_row(session, person_id)
    return person_to_dict(person) if person else None


async def get_person_by_email(session: AsyncSession, email: str) -> Optional[Dict]:
    """
    Get a person by email address (case-insensitive).

    Args:
        session: Database session
        email: Email address in any case

    Returns:
        Person dictionary or None if not found
    """
    email = normalize_email(email)
    result = await session.execute(
        select(Person).where(func.lower(func.trim(Person.email)) == email).limit(1)
    )
    person = result.scalar_one_or_none()
    return person_to_dict(person) if person else None


async def backfill_person(session: AsyncSession, person_id: str, **fields) -> bool:
    """
    Fill in profile fields that are still empty. Populated fields are never overwritten.

    Returns:
        True if anything changed
    """
    person = await _get_person_row(session, person_id)
    if person is None:
        return False

    changed = False
    for name in BACKFILL_FIELDS:
        value = _clean(fields.get(name))
        if value is None:
            continue
        if getattr(person, name) in (None, ""):
            setattr(person, name, value)
            changed = True

    if changed:
        await session.commit()
        logger.info(f"Backfilled empty profile fields for person {person_id}")
    return changed


async def wait_for_person(
    session: AsyncSession, person_id: str, retry: FixedDelayRetry = IDENTITY_VISIBILITY_RETRY
) -> Optional[Dict]:
    """Poll until the profile row for ``person_id`` is visible, or give up with None."""
    return await retry.poll(lambda: get_person_by_id(session, person_id))


async def provision_person(
    session: AsyncSession,
    provider: AuthProviderClient,
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    phone: Optional[str] = None,
    team_club_affiliation_id: Optional[int] = None,
    role: PersonRole = PersonRole.VOLUNTEER,
    self_service: bool = False,
    redirect_to: Optional[str] = None,
    extra_metadata: Optional[Dict] = None,
    retry: FixedDelayRetry = IDENTITY_VISIBILITY_RETRY,
    backfill: bool = True,
) -> Dict:
    """
    Return the person behind ``email``, creating an account if there is none.

    An existing person is reused as-is apart from backfilling empty fields
    (skipped when ``backfill`` is off, for callers that have not proven they
    own the address).
    A new account is created through the provider, then the profile row is
    polled for. If it never shows up the id is returned anyway; callers that
    write rows referencing it retry on foreign-key errors.

    Args:
        session: Database session
        provider: Auth provider client
        email: Email address (any case)
        self_service: Use the public sign-up endpoint, which may return a session
        redirect_to: Where the provider's confirmation link should land (self-service only)
        backfill: Fill empty profile fields of an existing person

    Returns:
        Dict with person_id, created flag, and the provider session (self-service only)

    Raises:
        ValidationFailed: If the email is malformed
        IdentityCreationFailed: If the provider rejects the new account
    """
    email = normalize_email(email)

    existing = await get_person_by_email(session, email)
    if existing:
        if backfill:
            await backfill_person(
                session,
                existing["id"],
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                team_club_affiliation_id=team_club_affiliation_id,
            )
        return {"person_id": existing["id"], "created": False, "session": None}

    metadata = {
        "first_name": _clean(first_name) or "",
        "last_name": _clean(last_name) or "",
        "phone": _clean(phone) or "",
        "role": PersonRole(role).value,
        "team_club_affiliation_id": team_club_affiliation_id,
    }
    if extra_metadata:
        metadata.update(extra_metadata)

    provider_session = None
    if self_service:
        result = await provider.sign_up(
            email, generate_temporary_password(), metadata, redirect_to=redirect_to
        )
        user = result.user
        provider_session = result.session
    else:
        user = await provider.create_user(email, generate_temporary_password(), metadata)

    logger.info(f"Created account {user.id} for {email}")

    person = await wait_for_person(session, user.id, retry)
    if person is None:
        logger.warning(
            f"Profile row for {user.id} not visible after {retry.max_attempts} attempts; continuing"
        )

    return {"person_id": user.id, "created": True, "session": provider_session}


async def upsert_profile(
    session: AsyncSession,
    person_id: str,
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    phone: Optional[str] = None,
    team_club_affiliation_id: Optional[int] = None,
    role: Optional[PersonRole] = None,
) -> Dict:
    """
    Write the profile row for a newly created account, creating it if the
    provider trigger has not done so yet.

    Returns:
        Person dictionary
    """
    person = await _get_person_row(session, person_id)
    if person is None:
        person = Person(id=person_id, email=normalize_email(email))
        session.add(person)

    person.email = normalize_email(email)
    person.first_name = _clean(first_name)
    person.last_name = _clean(last_name)
    person.phone = _clean(phone)
    person.team_club_affiliation_id = team_club_affiliation_id or None
    if role is not None:
        person.role = PersonRole(role).value

    await session.commit()
    await session.refresh(person)
    return person_to_dict(person)


async def update_profile(session: AsyncSession, person_id: str, **fields) -> Dict:
    """
    Self-service profile edit. Only the fields passed (not None) are changed.

    Raises:
        NotFound: If the person does not exist
    """
    person = await _get_person_row(session, person_id)
    if person is None:
        raise NotFound("Profile not found")

    editable = (
        "first_name",
        "last_name",
        "phone",
        "emergency_contact_name",
        "emergency_contact_phone",
        "team_club_affiliation_id",
    )
    for name in editable:
        if name in fields and fields[name] is not None:
            setattr(person, name, _clean(fields[name]))

    await session.commit()
    await session.refresh(person)
    return person_to_dict(person)


async def set_person_role(session: AsyncSession, person_id: str, role: PersonRole) -> bool:
    """Change a person's access level. Returns False if the person does not exist."""
    person = await _get_person_row(session, person_id)
    if person is None:
        return False
    person.role = PersonRole(role).value
    await session.commit()
    return True
