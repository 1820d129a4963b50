"""
Waiver ledger: versioned liability waiver text and append-only signatures.
"""

import logging
from typing import Optional, Dict
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_hub.database.models import Waiver, WaiverSettings, Person
from volunteer_hub.services.errors import ValidationFailed, NotFound
from volunteer_hub.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def _waiver_to_dict(waiver: Waiver) -> Dict:
    return {
        "id": waiver.id,
        "volunteer_id": waiver.volunteer_id,
        "signature_name": waiver.signature_name,
        "ip_address": waiver.ip_address,
        "waiver_version": waiver.waiver_version,
        "waiver_text": waiver.waiver_text,
        "parent_guardian_name": waiver.parent_guardian_name,
        "parent_guardian_email": waiver.parent_guardian_email,
        "parent_guardian_phone": waiver.parent_guardian_phone,
        "parent_signature_name": waiver.parent_signature_name,
        "parent_signed_at": waiver.parent_signed_at.isoformat() if waiver.parent_signed_at else None,
        "agreed_at": waiver.agreed_at.isoformat() if waiver.agreed_at else None,
    }


async def get_current_waiver(session: AsyncSession) -> Dict:
    """
    Current waiver text and version, read fresh from the database every time.

    Returns:
        Dict with waiver_text and version (version 1 with empty text if never set)
    """
    result = await session.execute(
        select(WaiverSettings)
        .where(WaiverSettings.id == 1)
        .execution_options(populate_existing=True)
    )
    settings = result.scalar_one_or_none()
    if settings is None:
        return {"waiver_text": "", "version": 1, "updated_at": None}
    return {
        "waiver_text": settings.waiver_text,
        "version": settings.version,
        "updated_at": settings.updated_at.isoformat() if settings.updated_at else None,
    }


async def update_waiver_text(session: AsyncSession, waiver_text: str) -> Dict:
    """
    Replace the waiver text and bump the version. Everyone must re-sign afterwards.

    Raises:
        ValidationFailed: If the text is empty
    """
    if not waiver_text or not waiver_text.strip():
        raise ValidationFailed("Waiver text cannot be empty")

    result = await session.execute(select(WaiverSettings).where(WaiverSettings.id == 1))
    settings = result.scalar_one_or_none()
    if settings is None:
        settings = WaiverSettings(id=1, waiver_text=waiver_text, version=1)
        session.add(settings)
    else:
        settings.waiver_text = waiver_text
        settings.version = (settings.version or 0) + 1

    await session.commit()
    logger.info(f"Waiver text updated to version {settings.version}")
    return await get_current_waiver(session)


async def sign_waiver(
    session: AsyncSession,
    volunteer_id: str,
    signature_name: str,
    ip_address: Optional[str] = None,
    parent_info: Optional[Dict] = None,
) -> Dict:
    """
    Record a signature against the waiver version in force right now.

    The text is snapshotted into the row, so later edits to the waiver never
    change what a person agreed to.

    Args:
        session: Database session
        volunteer_id: Person signing (or being signed for)
        signature_name: Typed signature
        ip_address: Optional client address
        parent_info: Optional parent/guardian fields for a minor
            (parent_guardian_name, parent_guardian_email, parent_guardian_phone,
            parent_signature_name)

    Returns:
        Waiver dictionary

    Raises:
        ValidationFailed: If the signature is empty
        NotFound: If the person does not exist
    """
    if not signature_name or not signature_name.strip():
        raise ValidationFailed("Signature is required")

    person = (await session.execute(select(Person.id).where(Person.id == volunteer_id))).scalar_one_or_none()
    if person is None:
        raise NotFound("Volunteer not found")

    current = await get_current_waiver(session)

    parent_info = parent_info or {}
    waiver = Waiver(
        volunteer_id=volunteer_id,
        signature_name=signature_name.strip(),
        ip_address=ip_address,
        waiver_version=current["version"],
        waiver_text=current["waiver_text"],
        parent_guardian_name=parent_info.get("parent_guardian_name"),
        parent_guardian_email=parent_info.get("parent_guardian_email"),
        parent_guardian_phone=parent_info.get("parent_guardian_phone"),
        parent_signature_name=parent_info.get("parent_signature_name"),
        parent_signed_at=utcnow() if parent_info.get("parent_signature_name") else None,
    )
    session.add(waiver)
    await session.commit()
    await session.refresh(waiver)

    logger.info(f"Volunteer {volunteer_id} signed waiver version {waiver.waiver_version}")
    return _waiver_to_dict(waiver)


async def check_waiver_status(session: AsyncSession, volunteer_id: str) -> bool:
    """True if the person has signed the current waiver version (or a newer one)."""
    current = await get_current_waiver(session)
    result = await session.execute(
        select(func.count(Waiver.id)).where(
            Waiver.volunteer_id == volunteer_id,
            Waiver.waiver_version >= current["version"],
        )
    )
    return (result.scalar_one() or 0) > 0


async def get_signed_volunteer_ids(session: AsyncSession) -> set:
    """Ids of everyone holding a signature for the current version."""
    current = await get_current_waiver(session)
    result = await session.execute(
        select(Waiver.volunteer_id).where(Waiver.waiver_version >= current["version"]).distinct()
    )
    return set(result.scalars().all())


async def get_latest_waiver(session: AsyncSession, volunteer_id: str) -> Dict:
    """
    Most recent signature for a person.

    Raises:
        NotFound: If the person has never signed
    """
    result = await session.execute(
        select(Waiver)
        .where(Waiver.volunteer_id == volunteer_id)
        .order_by(Waiver.waiver_version.desc(), Waiver.agreed_at.desc(), Waiver.id.desc())
        .limit(1)
    )
    waiver = result.scalar_one_or_none()
    if waiver is None:
        raise NotFound("No waiver on file")
    return _waiver_to_dict(waiver)
