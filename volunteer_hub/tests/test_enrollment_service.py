"""
Tests for the end-to-end signup flows (self-service, admin/leader add, side-channel, leaders).
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from volunteer_hub.database.models import Person, PersonRole, Setting
from volunteer_hub.services import enrollment_service, identity_service, waiver_service
from volunteer_hub.services.errors import (
    AlreadySignedUp,
    NotAuthorized,
    NotFound,
    SignupIncomplete,
    SignupWindowExpired,
    ValidationFailed,
)
from volunteer_hub.services.notification_dispatcher import (
    RoleConfirmationEmail,
    WelcomeEmail,
    ParentGuardianConfirmationEmail,
    SlackSignupNotification,
)
from volunteer_hub.utils.datetime_utils import utcnow
from volunteer_hub.utils.retry import FixedDelayRetry


def _pii(**overrides):
    pii = {
        "first_name": "Robin",
        "last_name": "Cruz",
        "email": "Robin@Example.com",
        "phone": "555-0142",
        "emergency_contact_name": "Jo Cruz",
        "emergency_contact_phone": "555-0143",
        "is_minor": False,
    }
    pii.update(overrides)
    return pii


# ---------------------------------------------------------------------------
# Privileged side-channel
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_side_channel_rejects_accounts_older_than_two_minutes(db_session, auth_provider, make_role):
    role_id = await make_role()
    result = await identity_service.provision_person(db_session, auth_provider, "fresh@example.com")

    with pytest.raises(SignupWindowExpired):
        await enrollment_service.create_signup_for_new_user(
            db_session,
            auth_provider,
            result["person_id"],
            role_id,
            now=utcnow() + timedelta(seconds=121),
        )


@pytest.mark.asyncio
async def test_side_channel_accepts_fresh_account_and_records_waiver(db_session, auth_provider, make_role):
    role_id = await make_role()
    result = await identity_service.provision_person(db_session, auth_provider, "fresh@example.com")

    signup = await enrollment_service.create_signup_for_new_user(
        db_session,
        auth_provider,
        result["person_id"],
        role_id,
        phone=" 555-0100 ",
        waiver={"signature_name": "Fresh Rider", "ip_address": "10.1.1.1"},
    )

    assert signup["role_id"] == role_id
    assert signup["phone"] == "555-0100"
    assert signup["waiver_signed"] is False
    assert await waiver_service.check_waiver_status(db_session, result["person_id"]) is True


@pytest.mark.asyncio
async def test_side_channel_validates_input(db_session, auth_provider, make_role):
    role_id = await make_role()

    with pytest.raises(ValidationFailed):
        await enrollment_service.create_signup_for_new_user(db_session, auth_provider, "", role_id)
    with pytest.raises(NotFound):
        await enrollment_service.create_signup_for_new_user(db_session, auth_provider, "nobody", role_id)


# ---------------------------------------------------------------------------
# Self-service signup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_self_signup_with_session_signs_waiver_and_notifies(db_session, auth_provider, dispatcher, make_role):
    auth_provider.issue_sessions = True
    role_id = await make_role(name="Registration Desk")

    result = await enrollment_service.self_signup(
        db_session, auth_provider, dispatcher, _pii(), role_id, ip_address="10.0.0.7"
    )

    assert result["email"] == "robin@example.com"
    assert result["access_token"] == f"access-{result['volunteer_id']}"
    assert result["signup"]["waiver_signed"] is True
    assert await waiver_service.check_waiver_status(db_session, result["volunteer_id"]) is True

    confirmation = dispatcher.of_type(RoleConfirmationEmail)[0]
    assert confirmation.to == "robin@example.com"
    assert confirmation.role["name"] == "Registration Desk"
    slack = dispatcher.of_type(SlackSignupNotification)[0]
    assert slack.role_id == role_id
    assert slack.volunteer_name == "Robin Cruz"
    assert len(dispatcher.of_type(WelcomeEmail)) == 1


@pytest.mark.asyncio
async def test_self_signup_without_session_uses_side_channel(db_session, auth_provider, dispatcher, make_role):
    role_id = await make_role()

    result = await enrollment_service.self_signup(db_session, auth_provider, dispatcher, _pii(), role_id)

    assert result["access_token"] is None
    assert result["signup"]["role_id"] == role_id
    assert result["signup"]["waiver_signed"] is False
    assert await waiver_service.check_waiver_status(db_session, result["volunteer_id"]) is True


@pytest.mark.asyncio
async def test_self_signup_for_existing_account_must_sign_in(db_session, auth_provider, dispatcher, make_person, make_role):
    role_id = await make_role()
    person_id = await make_person(email="robin@example.com")
    auth_provider.add_user(person_id, "robin@example.com", age_seconds=86400)

    with pytest.raises(SignupWindowExpired):
        await enrollment_service.self_signup(db_session, auth_provider, dispatcher, _pii(), role_id)
    assert dispatcher.jobs == []


@pytest.mark.asyncio
async def test_rejected_self_signup_leaves_existing_profile_untouched(
    db_session, auth_provider, dispatcher, make_person, make_role
):
    role_id = await make_role()
    person_id = await make_person(email="robin@example.com", first_name=None, last_name=None, phone=None)
    auth_provider.add_user(person_id, "robin@example.com", age_seconds=86400)

    with pytest.raises(SignupWindowExpired):
        await enrollment_service.self_signup(
            db_session, auth_provider, dispatcher, _pii(phone="555-6666"), role_id
        )

    row = (
        await db_session.execute(
            select(Person.first_name, Person.last_name, Person.phone).where(Person.id == person_id)
        )
    ).one()
    assert tuple(row) == (None, None, None)


@pytest.mark.asyncio
async def test_self_signup_reports_partial_failure_when_profile_never_appears(
    db_session, auth_provider, dispatcher, make_role, monkeypatch
):
    auth_provider.materialize_profiles = False
    role_id = await make_role()

    async def profile_never_visible(session, person_id, retry=None):
        return None

    monkeypatch.setattr(identity_service, "wait_for_person", profile_never_visible)
    monkeypatch.setattr(enrollment_service, "SIDE_CHANNEL_FK_RETRY", FixedDelayRetry(max_attempts=1, delay_seconds=0))

    with pytest.raises(SignupIncomplete) as exc_info:
        await enrollment_service.self_signup(db_session, auth_provider, dispatcher, _pii(), role_id)

    assert "Your account was created but signup didn't complete" in exc_info.value.message
    assert auth_provider.created_emails == ["robin@example.com"]
    assert dispatcher.jobs == []


@pytest.mark.asyncio
async def test_self_signup_survives_failed_waiver_write(db_session, auth_provider, dispatcher, make_role, monkeypatch):
    auth_provider.issue_sessions = True
    role_id = await make_role()

    async def broken_sign_waiver(session, *args, **kwargs):
        # Leaves the session needing a rollback, like a failed commit would
        session.add(Setting(key="broken", value=None))
        await session.commit()

    monkeypatch.setattr(waiver_service, "sign_waiver", broken_sign_waiver)

    result = await enrollment_service.self_signup(db_session, auth_provider, dispatcher, _pii(), role_id)

    assert result["signup"]["role_id"] == role_id
    assert len(dispatcher.of_type(RoleConfirmationEmail)) == 1


@pytest.mark.asyncio
async def test_self_signup_for_minor_notifies_parent(db_session, auth_provider, dispatcher, make_role):
    auth_provider.issue_sessions = True
    role_id = await make_role()
    pii = _pii(
        is_minor=True,
        parent_guardian_name="Pat Cruz",
        parent_guardian_email="pat@example.com",
        parent_signature_name="Pat Cruz",
    )

    result = await enrollment_service.self_signup(db_session, auth_provider, dispatcher, pii, role_id)

    parent_email = dispatcher.of_type(ParentGuardianConfirmationEmail)[0]
    assert parent_email.to == "pat@example.com"
    assert parent_email.volunteer_first_name == "Robin"
    waiver = await waiver_service.get_latest_waiver(db_session, result["volunteer_id"])
    assert waiver["parent_signature_name"] == "Pat Cruz"


@pytest.mark.asyncio
async def test_self_signup_requires_names_and_email(db_session, auth_provider, dispatcher, make_role):
    role_id = await make_role()

    with pytest.raises(ValidationFailed):
        await enrollment_service.self_signup(db_session, auth_provider, dispatcher, _pii(first_name=" "), role_id)


def test_parent_payload_requires_complete_consent():
    assert enrollment_service.parent_payload(_pii()) is None
    assert enrollment_service.parent_payload(_pii(is_minor=True, parent_guardian_name="Pat")) is None
    payload = enrollment_service.parent_payload(
        _pii(
            is_minor=True,
            parent_guardian_name="Pat",
            parent_guardian_email="pat@example.com",
            parent_signature_name="Pat",
        )
    )
    assert payload["parent_guardian_phone"] is None
    assert payload["parent_guardian_email"] == "pat@example.com"


# ---------------------------------------------------------------------------
# Admin / leader adds a volunteer
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_leader_adds_new_volunteer(db_session, auth_provider, dispatcher, make_person, make_domain, make_role):
    leader_id = await make_person(role=PersonRole.VOLUNTEER_LEADER)
    domain_id = await make_domain(leader_id=leader_id)
    role_id = await make_role(domain_id=domain_id)
    caller = {"id": leader_id, "role": "volunteer_leader"}

    result = await enrollment_service.add_volunteer_to_role(
        db_session,
        auth_provider,
        dispatcher,
        caller=caller,
        role_id=role_id,
        email="Added@Example.com",
        first_name="Ada",
        last_name="Added",
        phone="555-0111",
    )

    assert result["created"] is True
    assert result["signup"]["waiver_signed"] is False
    person = await identity_service.get_person_by_id(db_session, result["volunteer_id"])
    assert person["email"] == "added@example.com"
    assert person["phone"] == "555-0111"
    welcome = dispatcher.of_type(WelcomeEmail)[0]
    assert welcome.prompt_waiver_and_emergency_contact is True

    with pytest.raises(AlreadySignedUp):
        await enrollment_service.add_volunteer_to_role(
            db_session,
            auth_provider,
            dispatcher,
            caller=caller,
            role_id=role_id,
            email="added@example.com",
            first_name="Ada",
            last_name="Added",
        )


@pytest.mark.asyncio
async def test_volunteer_cannot_add_others(db_session, auth_provider, dispatcher, make_person, make_role):
    role_id = await make_role()
    caller = {"id": await make_person(), "role": "volunteer"}

    with pytest.raises(NotAuthorized):
        await enrollment_service.add_volunteer_to_role(
            db_session,
            auth_provider,
            dispatcher,
            caller=caller,
            role_id=role_id,
            email="x@example.com",
            first_name="X",
            last_name="Y",
        )
    assert auth_provider.created_emails == []


# ---------------------------------------------------------------------------
# Leader provisioning
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_leader_provisions_and_assigns(db_session, auth_provider, dispatcher, make_person, make_domain):
    admin = {"id": await make_person(role=PersonRole.ADMIN), "role": "admin"}
    domain_id = await make_domain()

    result = await enrollment_service.create_leader(
        db_session, auth_provider, dispatcher, admin, domain_id, "lead@example.com", "Lee", "Leader"
    )

    person = await identity_service.get_person_by_id(db_session, result["user_id"])
    assert person["role"] == "volunteer_leader"
    assert result["domain"]["leader_id"] == result["user_id"]
    assert len(dispatcher.of_type(WelcomeEmail)) == 1


@pytest.mark.asyncio
async def test_create_leader_never_demotes_an_admin(db_session, auth_provider, dispatcher, make_person, make_domain):
    admin_id = await make_person(role=PersonRole.ADMIN, email="boss@example.com")
    domain_id = await make_domain()

    result = await enrollment_service.create_leader(
        db_session, auth_provider, dispatcher, {"id": admin_id, "role": "admin"}, domain_id, "BOSS@example.com", "B", "Oss"
    )

    assert result["created"] is False
    person = await identity_service.get_person_by_id(db_session, admin_id)
    assert person["role"] == "admin"
    assert dispatcher.jobs == []


@pytest.mark.asyncio
async def test_only_admins_create_leaders(db_session, auth_provider, dispatcher, make_person, make_domain):
    domain_id = await make_domain()
    leader = {"id": await make_person(role=PersonRole.VOLUNTEER_LEADER), "role": "volunteer_leader"}

    with pytest.raises(NotAuthorized):
        await enrollment_service.create_leader(
            db_session, auth_provider, dispatcher, leader, domain_id, "x@example.com", "X", "Y"
        )
