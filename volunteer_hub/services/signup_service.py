"""
Capacity-checked signup registrar.

A role has ``positions_total`` seats. A person holds at most one signup row
per role; cancelling flips its status and signing up again reactivates the
same row. The capacity check and the write run in one transaction that
first locks the role row, so two requests racing for the last seat on
PostgreSQL are serialized instead of both succeeding.
"""

import logging
from typing import Optional, Dict, List
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.database.models import Role, Signup, SignupStatus
from volunteer_hub.services.catalog_service import role_to_dict
from volunteer_hub.services.errors import (
    AlreadySignedUp,
    RoleFull,
    NotFound,
    NotAuthorized,
    SignupIncomplete,
)
from volunteer_hub.utils.retry import FixedDelayRetry, RetryExhausted

logger = logging.getLogger(__name__)

# Profile row for a brand-new account may lag behind the account itself
FK_RETRY = FixedDelayRetry(max_attempts=10, delay_seconds=0.5)

VOLUNTEER_FK_NAME = "signups_volunteer_id_fkey"


def signup_to_dict(signup: Signup, role: Optional[Role] = None) -> Dict:
    """Convert a Signup ORM instance to a dictionary, with the role if given."""
    data = {
        "id": signup.id,
        "volunteer_id": signup.volunteer_id,
        "role_id": signup.role_id,
        "status": signup.status,
        "phone": signup.phone,
        "waiver_signed": signup.waiver_signed,
        "signed_up_at": signup.signed_up_at.isoformat() if signup.signed_up_at else None,
        "updated_at": signup.updated_at.isoformat() if signup.updated_at else None,
    }
    if role is not None:
        data["role"] = role_to_dict(role)
    return data


def is_fk_violation(error: BaseException) -> bool:
    """
    True when the signup write failed because the volunteer's profile row is not there yet.

    A foreign-key failure that names some other constraint (the role was deleted
    meanwhile) is not retryable. SQLite does not name the constraint at all, so
    its generic message is treated as the volunteer key.
    """
    if not isinstance(error, IntegrityError):
        return False
    message = str(getattr(error, "orig", error)).lower()
    if VOLUNTEER_FK_NAME in message:
        return True
    is_fk = "foreign key" in message or getattr(getattr(error, "orig", None), "sqlstate", None) == "23503"
    if not is_fk:
        return False
    return 'constraint "' not in message


async def create_signup(
    session: AsyncSession,
    volunteer_id: str,
    role_id: int,
    phone: Optional[str] = None,
    waiver_signed: bool = True,
) -> Dict:
    """
    Reserve one position on a role.

    Args:
        session: Database session
        volunteer_id: Person taking the seat
        role_id: Role to sign up for
        phone: Signup-specific phone number
        waiver_signed: Whether the waiver was signed as part of this signup

    Returns:
        Signup dictionary including the role

    Raises:
        NotFound: If the role does not exist
        AlreadySignedUp: If the person already holds a confirmed signup for the role
        RoleFull: If every position is taken
        IntegrityError: If the volunteer has no profile row (foreign-key violation)
    """
    try:
        role = (
            await session.execute(select(Role).where(Role.id == role_id).with_for_update())
        ).scalar_one_or_none()
        if role is None:
            raise NotFound("Role not found")

        existing = (
            await session.execute(
                select(Signup).where(Signup.volunteer_id == volunteer_id, Signup.role_id == role_id)
            )
        ).scalar_one_or_none()
        if existing is not None and existing.status == SignupStatus.CONFIRMED.value:
            raise AlreadySignedUp()

        confirmed = (
            await session.execute(
                select(func.count(Signup.id)).where(
                    Signup.role_id == role_id, Signup.status == SignupStatus.CONFIRMED.value
                )
            )
        ).scalar_one()
        if confirmed >= role.positions_total:
            raise RoleFull()

        if existing is not None:
            existing.status = SignupStatus.CONFIRMED.value
            existing.phone = phone
            existing.waiver_signed = waiver_signed
            signup = existing
            reactivated = True
        else:
            signup = Signup(
                volunteer_id=volunteer_id,
                role_id=role_id,
                phone=phone,
                status=SignupStatus.CONFIRMED.value,
                waiver_signed=waiver_signed,
            )
            session.add(signup)
            reactivated = False

        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        if not is_fk_violation(e):
            # Unique (volunteer, role) pair lost a race with a concurrent insert
            logger.warning(f"Duplicate signup for volunteer {volunteer_id} on role {role_id}: {e}")
            raise AlreadySignedUp() from e
        raise
    except Exception:
        await session.rollback()
        raise

    await session.refresh(signup)
    logger.info(
        f"{'Reactivated' if reactivated else 'Created'} signup {signup.id} "
        f"for volunteer {volunteer_id} on role {role_id} ({confirmed + 1}/{role.positions_total})"
    )
    return signup_to_dict(signup, role)


async def create_signup_with_fk_retry(
    session: AsyncSession,
    volunteer_id: str,
    role_id: int,
    phone: Optional[str] = None,
    waiver_signed: bool = True,
    retry: FixedDelayRetry = FK_RETRY,
) -> Dict:
    """
    ``create_signup`` that waits out a missing profile row for a brand-new account.

    Only foreign-key violations are retried; every other error surfaces at once.

    Raises:
        SignupIncomplete: If the profile row never showed up
    """
    try:
        return await retry.call(
            lambda: create_signup(session, volunteer_id, role_id, phone, waiver_signed),
            should_retry=is_fk_violation,
        )
    except RetryExhausted as e:
        logger.error(
            f"Signup for volunteer {volunteer_id} on role {role_id} failed after {e.attempts} attempts"
        )
        raise SignupIncomplete() from e


async def cancel_signup(
    session: AsyncSession, signup_id: int, volunteer_id: Optional[str] = None
) -> Dict:
    """
    Cancel a signup. Always allowed; no capacity check.

    Args:
        session: Database session
        signup_id: Signup to cancel
        volunteer_id: When given, the signup must belong to this person

    Raises:
        NotFound: If the signup does not exist
        NotAuthorized: If it belongs to someone else
    """
    signup = (await session.execute(select(Signup).where(Signup.id == signup_id))).scalar_one_or_none()
    if signup is None:
        raise NotFound("Signup not found")
    if volunteer_id is not None and signup.volunteer_id != volunteer_id:
        raise NotAuthorized("You can only cancel your own signups")

    signup.status = SignupStatus.CANCELLED.value
    await session.commit()
    await session.refresh(signup)
    logger.info(f"Cancelled signup {signup_id}")
    return signup_to_dict(signup)


async def get_my_signups(session: AsyncSession, volunteer_id: str) -> List[Dict]:
    """Confirmed signups for a person, soonest event first."""
    result = await session.execute(
        select(Signup, Role)
        .join(Role, Signup.role_id == Role.id)
        .where(Signup.volunteer_id == volunteer_id, Signup.status == SignupStatus.CONFIRMED.value)
        .order_by(Role.event_date.asc().nulls_last(), Role.start_time.asc().nulls_last(), Signup.id)
    )
    return [signup_to_dict(signup, role) for signup, role in result.all()]
