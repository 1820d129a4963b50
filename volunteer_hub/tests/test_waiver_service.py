"""
Tests for the waiver ledger.
"""

import pytest

from volunteer_hub.services import waiver_service
from volunteer_hub.services.errors import ValidationFailed, NotFound


@pytest.mark.asyncio
async def test_current_waiver_defaults_to_version_one(db_session):
    waiver = await waiver_service.get_current_waiver(db_session)

    assert waiver["version"] == 1
    assert waiver["waiver_text"] == ""


@pytest.mark.asyncio
async def test_signature_for_old_version_is_not_current(db_session, make_person):
    volunteer_id = await make_person()
    await waiver_service.update_waiver_text(db_session, "Ride at your own risk.")

    await waiver_service.sign_waiver(db_session, volunteer_id, "Test Volunteer")
    assert await waiver_service.check_waiver_status(db_session, volunteer_id) is True

    updated = await waiver_service.update_waiver_text(db_session, "Ride at your own risk. Wear a helmet.")
    assert updated["version"] == 2
    assert await waiver_service.check_waiver_status(db_session, volunteer_id) is False

    await waiver_service.sign_waiver(db_session, volunteer_id, "Test Volunteer")
    assert await waiver_service.check_waiver_status(db_session, volunteer_id) is True


@pytest.mark.asyncio
async def test_signature_keeps_text_it_was_signed_against(db_session, make_person):
    volunteer_id = await make_person()
    await waiver_service.update_waiver_text(db_session, "Original text")
    signed = await waiver_service.sign_waiver(db_session, volunteer_id, "Test Volunteer", ip_address="10.0.0.1")

    await waiver_service.update_waiver_text(db_session, "New text")
    latest = await waiver_service.get_latest_waiver(db_session, volunteer_id)

    assert signed["waiver_text"] == "Original text"
    assert latest["waiver_text"] == "Original text"
    assert latest["waiver_version"] == 1
    assert latest["ip_address"] == "10.0.0.1"


@pytest.mark.asyncio
async def test_parent_consent_is_recorded(db_session, make_person):
    volunteer_id = await make_person()

    waiver = await waiver_service.sign_waiver(
        db_session,
        volunteer_id,
        "Kid Rider",
        parent_info={
            "parent_guardian_name": "Pat Parent",
            "parent_guardian_email": "pat@example.com",
            "parent_signature_name": "Pat Parent",
        },
    )

    assert waiver["parent_guardian_email"] == "pat@example.com"
    assert waiver["parent_signed_at"] is not None


@pytest.mark.asyncio
async def test_sign_requires_signature_and_person(db_session, make_person):
    with pytest.raises(ValidationFailed):
        await waiver_service.sign_waiver(db_session, await make_person(), "   ")
    with pytest.raises(NotFound):
        await waiver_service.sign_waiver(db_session, "missing-person", "Someone")


@pytest.mark.asyncio
async def test_empty_waiver_text_is_rejected(db_session):
    with pytest.raises(ValidationFailed):
        await waiver_service.update_waiver_text(db_session, "  ")


@pytest.mark.asyncio
async def test_signed_volunteer_ids_follow_current_version(db_session, make_person):
    early = await make_person()
    late = await make_person()
    await waiver_service.sign_waiver(db_session, early, "Early Signer")
    await waiver_service.update_waiver_text(db_session, "Revised")
    await waiver_service.update_waiver_text(db_session, "Revised again")
    await waiver_service.sign_waiver(db_session, late, "Late Signer")

    assert await waiver_service.get_signed_volunteer_ids(db_session) == {late}
