"""
End-to-end signup flows that span the auth provider, the database and notifications.

- ``add_volunteer_to_role``: an admin or leader signs someone else up.
- ``self_signup``: a visitor fills in the signup form without being signed in.
- ``create_signup_for_new_user``: privileged write for an account created
  moments ago that has no session yet. Only accounts younger than
  ``MAX_AGE_SECONDS`` are accepted.
- ``create_leader``: an admin provisions a domain leader.

None of these can be rolled back once the account exists, so partial failure
is reported to the person instead of hidden.
"""

import logging
from datetime import datetime
from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.database.models import PersonRole
from volunteer_hub.services import (
    catalog_service,
    identity_service,
    signup_service,
    waiver_service,
)
from volunteer_hub.services.auth_provider import AuthProviderClient
from volunteer_hub.services.email_service import SITE_URL
from volunteer_hub.services.errors import (
    ValidationFailed,
    NotFound,
    NotAuthorized,
    SignupWindowExpired,
    SignupIncomplete,
)
from volunteer_hub.services.notification_dispatcher import (
    RoleConfirmationEmail,
    WelcomeEmail,
    ParentGuardianConfirmationEmail,
    SlackSignupNotification,
)
from volunteer_hub.utils.datetime_utils import utcnow, parse_iso_datetime
from volunteer_hub.utils.retry import FixedDelayRetry, RetryExhausted

logger = logging.getLogger(__name__)

# Side-channel only serves accounts created within this many seconds
MAX_AGE_SECONDS = 120

SELF_SIGNUP_FK_RETRY = FixedDelayRetry(max_attempts=10, delay_seconds=0.5)
SIDE_CHANNEL_FK_RETRY = FixedDelayRetry(max_attempts=8, delay_seconds=0.5)
LEADER_VISIBILITY_RETRY = FixedDelayRetry(max_attempts=15, delay_seconds=0.3)

PARENT_FIELDS = (
    "parent_guardian_name",
    "parent_guardian_email",
    "parent_guardian_phone",
    "parent_signature_name",
)


def _require(fields: Dict, *names: str) -> None:
    missing = [n for n in names if not str(fields.get(n) or "").strip()]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")


def parent_payload(pii: Dict) -> Optional[Dict]:
    """Parent/guardian consent fields, only when the volunteer is a minor and the consent is complete."""
    if not pii.get("is_minor"):
        return None
    if not (pii.get("parent_guardian_name") and pii.get("parent_guardian_email") and pii.get("parent_signature_name")):
        return None
    return {name: (pii.get(name) or None) for name in PARENT_FIELDS}


def welcome_redirect() -> str:
    # Site root so the provider can append its token fragment cleanly
    return f"{SITE_URL}/"


def submit_signup_notifications(
    dispatcher,
    role: Dict,
    volunteer_id: str,
    email: str,
    first_name: Optional[str],
    last_name: Optional[str],
) -> None:
    volunteer_name = " ".join(p for p in (first_name, last_name) if p).strip() or email
    dispatcher.submit(RoleConfirmationEmail(to=email, first_name=first_name, role=role))
    dispatcher.submit(
        SlackSignupNotification(
            role_id=role["id"],
            volunteer_id=volunteer_id,
            volunteer_name=volunteer_name,
            volunteer_email=email,
            role_name=role.get("name"),
        )
    )


async def add_volunteer_to_role(
    session: AsyncSession,
    provider: AuthProviderClient,
    dispatcher,
    caller: Dict,
    role_id: int,
    email: str,
    first_name: str,
    last_name: str,
    phone: Optional[str] = None,
    team_club_affiliation_id: Optional[int] = None,
) -> Dict:
    """
    Sign a third party up for a role on behalf of an admin or leader.

    Creates the account if the email is new, writes the profile, reserves the
    seat (waiver unsigned; the volunteer is asked to sign on first login) and
    queues a welcome email, a role confirmation and a Slack notice.

    Args:
        caller: Profile of the signed-in admin or leader

    Returns:
        Dict with volunteer_id, created flag and the signup

    Raises:
        ValidationFailed: Missing name or email
        NotFound: Role does not exist
        NotAuthorized: Caller is neither admin nor a leader of the role
        IdentityCreationFailed: Provider refused the new account
        AlreadySignedUp / RoleFull: From the registrar
    """
    _require(
        {"email": email, "first_name": first_name, "last_name": last_name},
        "email",
        "first_name",
        "last_name",
    )
    await catalog_service.authorize_role_manager(session, caller, role_id)

    provisioned = await identity_service.provision_person(
        session,
        provider,
        email,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        team_club_affiliation_id=team_club_affiliation_id,
    )
    volunteer_id = provisioned["person_id"]

    if provisioned["created"]:
        await identity_service.upsert_profile(
            session,
            volunteer_id,
            email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            team_club_affiliation_id=team_club_affiliation_id,
            role=PersonRole.VOLUNTEER,
        )

    signup = await signup_service.create_signup_with_fk_retry(
        session, volunteer_id, role_id, phone=(phone or "").strip() or None, waiver_signed=False
    )

    email = identity_service.normalize_email(email)
    if provisioned["created"]:
        dispatcher.submit(
            WelcomeEmail(to=email, redirect_to=welcome_redirect(), prompt_waiver_and_emergency_contact=True)
        )
    submit_signup_notifications(dispatcher, signup["role"], volunteer_id, email, first_name, last_name)

    logger.info(
        f"{caller.get('id')} added volunteer {volunteer_id} to role {role_id}"
        f"{' (new account)' if provisioned['created'] else ''}"
    )
    return {"volunteer_id": volunteer_id, "created": provisioned["created"], "signup": signup}


async def create_signup_for_new_user(
    session: AsyncSession,
    provider: AuthProviderClient,
    user_id: str,
    role_id: int,
    phone: Optional[str] = None,
    waiver: Optional[Dict] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Reserve a seat for an account that was created moments ago and has no session.

    The account's creation time, as reported by the provider, is the proof that
    the caller just went through sign-up. Capacity and duplicates are checked by
    the registrar exactly as for a signed-in volunteer.

    Args:
        user_id: Identity id returned by the sign-up call
        waiver: Optional signature to record (signature_name plus parent/guardian fields)
        now: Clock override

    Raises:
        ValidationFailed: Missing ids, or the provider returned no creation time
        NotFound: Unknown account or role
        SignupWindowExpired: Account older than MAX_AGE_SECONDS
        IntegrityError: Profile row not visible yet (foreign-key violation, retryable)
    """
    if not user_id or not role_id:
        raise ValidationFailed("Missing user_id or role_id")

    user = await provider.get_user(user_id)
    if user is None:
        raise NotFound("User not found or invalid")

    try:
        created_at = parse_iso_datetime(user.created_at)
    except ValueError:
        created_at = None
    if created_at is None:
        raise ValidationFailed("Invalid user data")

    age = ((now or utcnow()) - created_at).total_seconds()
    if age > MAX_AGE_SECONDS:
        logger.warning(f"Rejected side-channel signup for {user_id}: account is {age:.0f}s old")
        raise SignupWindowExpired()

    signup = await signup_service.create_signup(
        session,
        user_id,
        role_id,
        phone=(str(phone).strip() or None) if phone is not None else None,
        waiver_signed=False,
    )

    if waiver and waiver.get("signature_name"):
        try:
            await waiver_service.sign_waiver(
                session,
                user_id,
                waiver["signature_name"],
                ip_address=waiver.get("ip_address"),
                parent_info={name: waiver.get(name) for name in PARENT_FIELDS},
            )
        except Exception as e:
            await session.rollback()
            logger.warning(f"Waiver for new user {user_id} not recorded: {e}")

    return signup


async def self_signup(
    session: AsyncSession,
    provider: AuthProviderClient,
    dispatcher,
    pii: Dict,
    role_id: int,
    ip_address: Optional[str] = None,
) -> Dict:
    """
    Sign-up form flow: create (or reuse) an account, sign the waiver, reserve the seat.

    If the provider hands back a session the waiver is signed right away
    (failures logged and ignored) and the seat is reserved as that person.
    Without a session the privileged side-channel is used instead. Both paths
    retry only on foreign-key violations while the profile row catches up.

    Args:
        pii: first_name, last_name, email, phone, emergency contact,
            team_club_affiliation_id, is_minor and parent/guardian fields

    Returns:
        Dict with volunteer_id, email, names, signup and the provider session if any

    Raises:
        ValidationFailed: Missing name or email
        IdentityCreationFailed: Provider refused the account
        SignupWindowExpired: The email belongs to an existing account (it must sign in)
        AlreadySignedUp / RoleFull: From the registrar
        SignupIncomplete: Account exists but the seat could not be written
    """
    _require(pii, "first_name", "last_name", "email")
    first_name = pii["first_name"].strip()
    last_name = pii["last_name"].strip()
    email = identity_service.normalize_email(pii["email"])
    phone = (pii.get("phone") or "").strip() or None
    volunteer_name = f"{first_name} {last_name}".strip()
    parent = parent_payload(pii)

    provisioned = await identity_service.provision_person(
        session,
        provider,
        email,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        team_club_affiliation_id=pii.get("team_club_affiliation_id"),
        self_service=True,
        redirect_to=f"{SITE_URL}/volunteer",
        # Anonymous form: knowing an email is not enough to edit that profile
        backfill=False,
        extra_metadata={
            "emergency_contact_name": pii.get("emergency_contact_name") or "",
            "emergency_contact_phone": pii.get("emergency_contact_phone") or "",
        },
    )
    volunteer_id = provisioned["person_id"]
    provider_session = provisioned["session"]

    if provider_session is not None:
        try:
            await waiver_service.sign_waiver(session, volunteer_id, volunteer_name, ip_address, parent)
        except Exception as e:
            await session.rollback()
            logger.warning(f"Waiver sign failed for {volunteer_id} (may already be signed): {e}")

        signup = await signup_service.create_signup_with_fk_retry(
            session, volunteer_id, role_id, phone=phone, waiver_signed=True, retry=SELF_SIGNUP_FK_RETRY
        )
    else:
        waiver = {"signature_name": volunteer_name, "ip_address": ip_address, **(parent or {})}
        try:
            signup = await SIDE_CHANNEL_FK_RETRY.call(
                lambda: create_signup_for_new_user(session, provider, volunteer_id, role_id, phone, waiver),
                should_retry=signup_service.is_fk_violation,
            )
        except RetryExhausted as e:
            raise SignupIncomplete() from e

    submit_signup_notifications(dispatcher, signup["role"], volunteer_id, email, first_name, last_name)
    if provisioned["created"]:
        dispatcher.submit(WelcomeEmail(to=email, redirect_to=welcome_redirect()))
    if parent and parent.get("parent_guardian_email"):
        dispatcher.submit(
            ParentGuardianConfirmationEmail(
                to=parent["parent_guardian_email"],
                parent_guardian_name=parent.get("parent_guardian_name"),
                volunteer_first_name=first_name,
                volunteer_last_name=last_name,
                role=signup["role"],
            )
        )

    return {
        "volunteer_id": volunteer_id,
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
        "signup": signup,
        "access_token": provider_session.access_token if provider_session else None,
        "refresh_token": provider_session.refresh_token if provider_session else None,
    }


async def create_leader(
    session: AsyncSession,
    provider: AuthProviderClient,
    dispatcher,
    caller: Dict,
    domain_id: int,
    email: str,
    first_name: str,
    last_name: str,
    phone: Optional[str] = None,
) -> Dict:
    """
    Make someone the leader of a domain, creating their account if needed.

    Raises:
        NotAuthorized: Caller is not an admin
        ValidationFailed: Missing name or email
        NotFound: Domain does not exist
        IdentityCreationFailed: Provider refused the new account
    """
    if caller.get("role") != PersonRole.ADMIN.value:
        raise NotAuthorized("Admin role required")
    _require(
        {"email": email, "first_name": first_name, "last_name": last_name},
        "email",
        "first_name",
        "last_name",
    )
    await catalog_service.get_domain(session, domain_id)

    provisioned = await identity_service.provision_person(
        session,
        provider,
        email,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        role=PersonRole.VOLUNTEER_LEADER,
        retry=LEADER_VISIBILITY_RETRY,
    )
    leader_id = provisioned["person_id"]

    if provisioned["created"]:
        await identity_service.upsert_profile(
            session,
            leader_id,
            email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            role=PersonRole.VOLUNTEER_LEADER,
        )
    else:
        existing = await identity_service.get_person_by_id(session, leader_id)
        # Never demote an admin
        if existing and existing["role"] != PersonRole.ADMIN.value:
            await identity_service.set_person_role(session, leader_id, PersonRole.VOLUNTEER_LEADER)

    domain = await catalog_service.assign_leader(session, domain_id, leader_id)

    if provisioned["created"]:
        dispatcher.submit(WelcomeEmail(to=identity_service.normalize_email(email), redirect_to=welcome_redirect()))

    logger.info(f"Leader {leader_id} assigned to domain {domain_id}")
    return {"user_id": leader_id, "created": provisioned["created"], "domain": domain}
