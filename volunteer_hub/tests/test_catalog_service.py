"""
Tests for the role and domain catalog.
"""

from datetime import date

import pytest
from sqlalchemy import select

from volunteer_hub.database.models import Role, Signup, PersonRole
from volunteer_hub.services import catalog_service, signup_service
from volunteer_hub.services.errors import ValidationFailed, NotFound, NotAuthorized


@pytest.mark.asyncio
async def test_domain_with_roles_cannot_be_deleted(db_session, make_domain, make_role):
    domain_id = await make_domain()
    await make_role(domain_id=domain_id)

    with pytest.raises(ValidationFailed) as exc_info:
        await catalog_service.delete_domain(db_session, domain_id)

    assert "Cannot delete domain with 1 assigned roles" in exc_info.value.message


@pytest.mark.asyncio
async def test_empty_domain_can_be_deleted(db_session, make_domain):
    domain_id = await make_domain()

    assert await catalog_service.delete_domain(db_session, domain_id) is True
    with pytest.raises(NotFound):
        await catalog_service.get_domain(db_session, domain_id)


@pytest.mark.asyncio
async def test_role_with_confirmed_signups_cannot_be_deleted(db_session, make_person, make_role):
    role_id = await make_role()
    await signup_service.create_signup(db_session, await make_person(), role_id)

    with pytest.raises(ValidationFailed) as exc_info:
        await catalog_service.delete_role(db_session, role_id)

    assert exc_info.value.message == "Cannot delete role with confirmed signups. Please cancel all signups first."


@pytest.mark.asyncio
async def test_role_with_only_cancelled_signups_can_be_deleted(db_session, make_person, make_role):
    role_id = await make_role()
    signup = await signup_service.create_signup(db_session, await make_person(), role_id)
    await signup_service.cancel_signup(db_session, signup["id"])

    assert await catalog_service.delete_role(db_session, role_id) is True

    assert (await db_session.execute(select(Role).where(Role.id == role_id))).scalar_one_or_none() is None
    assert (await db_session.execute(select(Signup).where(Signup.role_id == role_id))).first() is None


@pytest.mark.asyncio
async def test_create_role_with_flexible_time(db_session):
    role = await catalog_service.create_role(
        db_session,
        {"name": "Course Marshal", "flexible_time": True, "start_time": "07:00", "end_time": "09:00"},
        created_by=None,
    )

    assert role["start_time"] == "00:00"
    assert role["end_time"] == "00:00"
    assert role["positions_filled"] == 0


@pytest.mark.asyncio
async def test_create_role_rejects_malformed_times(db_session):
    with pytest.raises(ValidationFailed):
        await catalog_service.create_role(db_session, {"name": "Bad", "start_time": "9am", "end_time": "noon"})
    with pytest.raises(ValidationFailed):
        await catalog_service.create_role(db_session, {"name": "Bad", "start_time": "07:00", "end_time": "25:00"})

    role = await catalog_service.create_role(
        db_session, {"name": "Sweep", "start_time": "14:30:00", "end_time": "Flexible"}
    )
    assert (role["start_time"], role["end_time"]) == ("00:00", "00:00")


@pytest.mark.asyncio
async def test_update_role_rejects_malformed_time(db_session, make_role):
    role_id = await make_role(start_time="07:00", end_time="09:00")

    with pytest.raises(ValidationFailed):
        await catalog_service.update_role(db_session, role_id, {"end_time": "9 o'clock"})


@pytest.mark.asyncio
async def test_create_role_rejects_zero_positions(db_session):
    with pytest.raises(ValidationFailed):
        await catalog_service.create_role(db_session, {"name": "Nobody", "positions_total": 0})


@pytest.mark.asyncio
async def test_update_role_keeps_unspecified_fields(db_session, make_role):
    role_id = await make_role(name="Registration", positions_total=4, location="Tent A")

    updated = await catalog_service.update_role(db_session, role_id, {"positions_total": 6})

    assert updated["positions_total"] == 6
    assert updated["location"] == "Tent A"


@pytest.mark.asyncio
async def test_duplicate_role_copies_details_but_not_signups(db_session, make_person, make_role):
    role_id = await make_role(name="Feed Zone", positions_total=2, location="Km 40")
    await signup_service.create_signup(db_session, await make_person(), role_id)

    copy = await catalog_service.duplicate_role(db_session, role_id)

    assert copy["id"] != role_id
    assert copy["name"] == "Feed Zone"
    assert copy["location"] == "Km 40"
    assert copy["positions_filled"] == 0


@pytest.mark.asyncio
async def test_list_roles_reports_fill_and_filters_by_date(db_session, make_person, make_role):
    saturday = await make_role(name="Setup", event_date=date(2026, 4, 18))
    await make_role(name="Teardown", event_date=date(2026, 4, 20))
    await signup_service.create_signup(db_session, await make_person(), saturday)

    roles = await catalog_service.list_roles(db_session, start_date="2026-04-18", end_date="2026-04-19")

    assert [r["name"] for r in roles] == ["Setup"]
    assert roles[0]["positions_filled"] == 1


@pytest.mark.asyncio
async def test_role_manager_authorization(db_session, make_person, make_domain, make_role):
    leader = await make_person(role=PersonRole.VOLUNTEER_LEADER)
    other_leader = await make_person(role=PersonRole.VOLUNTEER_LEADER)
    admin = await make_person(role=PersonRole.ADMIN)
    domain_id = await make_domain(leader_id=leader)
    role_id = await make_role(domain_id=domain_id)

    await catalog_service.authorize_role_manager(db_session, {"id": leader, "role": "volunteer_leader"}, role_id)
    await catalog_service.authorize_role_manager(db_session, {"id": admin, "role": "admin"}, role_id)
    with pytest.raises(NotAuthorized):
        await catalog_service.authorize_role_manager(
            db_session, {"id": other_leader, "role": "volunteer_leader"}, role_id
        )


@pytest.mark.asyncio
async def test_direct_role_leader_may_manage_role(db_session, make_person, make_role):
    volunteer = await make_person()
    role_id = await make_role(leader_id=volunteer)

    role = await catalog_service.authorize_role_manager(db_session, {"id": volunteer, "role": "volunteer"}, role_id)

    assert role.id == role_id


@pytest.mark.asyncio
async def test_assign_leader_requires_existing_person(db_session, make_domain):
    domain_id = await make_domain()

    with pytest.raises(NotFound):
        await catalog_service.assign_leader(db_session, domain_id, "no-such-person")


@pytest.mark.asyncio
async def test_list_domains_counts_roles(db_session, make_domain, make_role):
    busy = await make_domain(name="Aid Stations")
    await make_domain(name="Parking")
    await make_role(domain_id=busy)
    await make_role(domain_id=busy)

    domains = await catalog_service.list_domains(db_session)

    assert [(d["name"], d["role_count"]) for d in domains] == [("Aid Stations", 2), ("Parking", 0)]


@pytest.mark.asyncio
async def test_dashboard_stats_flags_critical_roles(db_session, make_person, make_role):
    today = date(2026, 4, 15)
    critical = await make_role(name="Sweep", positions_total=4, event_date=date(2026, 4, 18))
    healthy = await make_role(name="Timing", positions_total=2, event_date=date(2026, 4, 18))
    await make_role(name="Last Year", positions_total=2, event_date=date(2025, 4, 18))
    await signup_service.create_signup(db_session, await make_person(), critical)
    await signup_service.create_signup(db_session, await make_person(), healthy)

    stats = await catalog_service.dashboard_stats(db_session, today=today)

    assert stats["total_positions"] == 8
    assert stats["filled_positions"] == 2
    assert stats["fill_percentage"] == 25
    assert stats["total_roles"] == 3
    assert stats["upcoming_roles"] == 2
    assert stats["critical_roles"] == 1
