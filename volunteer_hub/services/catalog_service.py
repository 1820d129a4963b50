"""
Role and domain catalog.

Plain CRUD plus the two delete guards: a domain with roles cannot be deleted,
and a role with confirmed signups cannot be deleted.
"""

import logging
from datetime import date, datetime
from typing import Optional, Dict, List, Union
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from volunteer_hub.database.models import Role, Domain, Signup, Person, PersonRole, SignupStatus
from volunteer_hub.services.errors import ValidationFailed, NotFound, NotAuthorized
from volunteer_hub.utils.time_display import is_valid_time, normalize_role_times, PACIFIC_TZ

logger = logging.getLogger(__name__)

ROLE_FIELDS = (
    "name",
    "description",
    "location",
    "event_date",
    "start_time",
    "end_time",
    "positions_total",
    "estimate_duration_hours",
    "domain_id",
    "leader_id",
)
DOMAIN_FIELDS = ("name", "description", "leader_id")

# Upcoming roles this close to the event and under half full are flagged
CRITICAL_DAYS = 7
CRITICAL_FILL_PERCENT = 50


def _person_brief(person: Optional[Person]) -> Optional[Dict]:
    if person is None:
        return None
    return {
        "id": person.id,
        "first_name": person.first_name,
        "last_name": person.last_name,
        "email": person.email,
        "phone": person.phone,
    }


def role_to_dict(role: Role, positions_filled: Optional[int] = None) -> Dict:
    """Convert a Role ORM instance to a dictionary (relationships are not loaded here)."""
    data = {
        "id": role.id,
        "name": role.name,
        "description": role.description,
        "location": role.location,
        "event_date": role.event_date.isoformat() if role.event_date else None,
        "start_time": role.start_time,
        "end_time": role.end_time,
        "positions_total": role.positions_total,
        "estimate_duration_hours": role.estimate_duration_hours,
        "domain_id": role.domain_id,
        "leader_id": role.leader_id,
        "created_by": role.created_by,
        "created_at": role.created_at.isoformat() if role.created_at else None,
        "updated_at": role.updated_at.isoformat() if role.updated_at else None,
    }
    if positions_filled is not None:
        data["positions_filled"] = positions_filled
    return data


def domain_to_dict(domain: Domain) -> Dict:
    """Convert a Domain ORM instance to a dictionary."""
    return {
        "id": domain.id,
        "name": domain.name,
        "description": domain.description,
        "leader_id": domain.leader_id,
        "created_at": domain.created_at.isoformat() if domain.created_at else None,
        "updated_at": domain.updated_at.isoformat() if domain.updated_at else None,
    }


def _parse_event_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        raise ValidationFailed(f"Invalid event date: {value}")


def _validate_positions(value) -> int:
    try:
        positions = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed("positions_total must be a whole number")
    if positions < 1:
        raise ValidationFailed("positions_total must be at least 1")
    return positions


async def _confirmed_counts(session: AsyncSession, role_ids: List[int]) -> Dict[int, int]:
    if not role_ids:
        return {}
    result = await session.execute(
        select(Signup.role_id, func.count(Signup.id))
        .where(Signup.role_id.in_(role_ids), Signup.status == SignupStatus.CONFIRMED.value)
        .group_by(Signup.role_id)
    )
    return {role_id: count for role_id, count in result.all()}


async def count_confirmed(session: AsyncSession, role_id: int) -> int:
    """Number of confirmed signups for a role."""
    result = await session.execute(
        select(func.count(Signup.id)).where(
            Signup.role_id == role_id, Signup.status == SignupStatus.CONFIRMED.value
        )
    )
    return result.scalar_one() or 0


async def _get_role_row(session: AsyncSession, role_id: int) -> Role:
    result = await session.execute(
        select(Role).options(selectinload(Role.domain)).where(Role.id == role_id)
    )
    role = result.scalar_one_or_none()
    if role is None:
        raise NotFound("Role not found")
    return role


async def _get_domain_row(session: AsyncSession, domain_id: int) -> Domain:
    result = await session.execute(select(Domain).where(Domain.id == domain_id))
    domain = result.scalar_one_or_none()
    if domain is None:
        raise NotFound("Domain not found")
    return domain


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


async def authorize_role_manager(session: AsyncSession, caller: Dict, role_id: int) -> Role:
    """
    Allow admins, the role's direct leader, or the leader of the role's domain.

    Returns:
        The Role row

    Raises:
        NotFound: If the role does not exist
        NotAuthorized: If the caller may not manage the role
    """
    role = await _get_role_row(session, role_id)
    if caller.get("role") == PersonRole.ADMIN.value:
        return role
    if role.leader_id and role.leader_id == caller.get("id"):
        return role
    if role.domain is not None and role.domain.leader_id and role.domain.leader_id == caller.get("id"):
        return role
    raise NotAuthorized("Only an admin or a leader of this role can do that")


async def authorize_domain_leader(session: AsyncSession, caller: Dict, domain_id: Optional[int]) -> None:
    """Allow admins anywhere, and leaders inside the domain they lead."""
    if caller.get("role") == PersonRole.ADMIN.value:
        return
    if domain_id is not None:
        domain = await _get_domain_row(session, domain_id)
        if domain.leader_id and domain.leader_id == caller.get("id"):
            return
    raise NotAuthorized("Only an admin or the domain leader can do that")


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


async def list_roles(
    session: AsyncSession,
    start_date: Union[str, date, None] = None,
    end_date: Union[str, date, None] = None,
) -> List[Dict]:
    """
    List roles ordered by date then start time, with fill counts and leaders.

    Args:
        session: Database session
        start_date: Optional inclusive lower bound on event_date
        end_date: Optional inclusive upper bound on event_date
    """
    query = select(Role).options(
        selectinload(Role.domain).selectinload(Domain.leader),
        selectinload(Role.leader),
    )
    start = _parse_event_date(start_date)
    end = _parse_event_date(end_date)
    if start:
        query = query.where(Role.event_date >= start)
    if end:
        query = query.where(Role.event_date <= end)
    query = query.order_by(Role.event_date.asc().nulls_last(), Role.start_time.asc().nulls_last(), Role.id)

    roles = (await session.execute(query)).scalars().all()
    counts = await _confirmed_counts(session, [r.id for r in roles])

    items = []
    for role in roles:
        data = role_to_dict(role, counts.get(role.id, 0))
        data["direct_leader"] = _person_brief(role.leader)
        data["domain"] = (
            {
                "id": role.domain.id,
                "name": role.domain.name,
                "leader": _person_brief(role.domain.leader),
            }
            if role.domain
            else None
        )
        items.append(data)
    return items


async def get_role(session: AsyncSession, role_id: int) -> Dict:
    """
    Get a role with its confirmed signups and the volunteers' contact details.

    Raises:
        NotFound: If the role does not exist
    """
    result = await session.execute(
        select(Role)
        .options(selectinload(Role.signups).selectinload(Signup.volunteer), selectinload(Role.domain))
        .where(Role.id == role_id)
    )
    role = result.scalar_one_or_none()
    if role is None:
        raise NotFound("Role not found")

    confirmed = [s for s in role.signups if s.status == SignupStatus.CONFIRMED.value]
    confirmed.sort(key=lambda s: (s.signed_up_at is None, s.signed_up_at, s.id))

    data = role_to_dict(role, len(confirmed))
    data["domain"] = domain_to_dict(role.domain) if role.domain else None
    data["signups"] = [
        {
            "id": s.id,
            "phone": s.phone,
            "status": s.status,
            "signed_up_at": s.signed_up_at.isoformat() if s.signed_up_at else None,
            "volunteer": _person_brief(s.volunteer),
        }
        for s in confirmed
    ]
    return data


def _validate_time(name: str, value) -> Optional[str]:
    """Blank means unset; otherwise "HH:MM", "HH:MM:SS" or "flexible"."""
    if value is None or not str(value).strip():
        return None
    value = str(value).strip()
    if value.lower() == "flexible" or is_valid_time(value):
        return value
    raise ValidationFailed(f"{name} must be HH:MM (24-hour) or 'flexible', got {value!r}")


def _apply_role_fields(role: Role, fields: Dict) -> None:
    # Validate everything before touching the row so a bad field never leaves a partial update
    cleaned = {}
    for name in ROLE_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if name == "name":
            if not value or not str(value).strip():
                raise ValidationFailed("Role name is required")
            value = str(value).strip()
        elif name == "event_date":
            value = _parse_event_date(value)
        elif name == "positions_total":
            value = _validate_positions(value)
        elif name in ("start_time", "end_time"):
            value = _validate_time(name, value)
        cleaned[name] = value

    for name, value in cleaned.items():
        setattr(role, name, value)

    if fields.get("flexible_time") or "start_time" in fields or "end_time" in fields:
        if fields.get("flexible_time"):
            start, end = normalize_role_times("flexible", "flexible")
        else:
            start, end = normalize_role_times(role.start_time, role.end_time)
        role.start_time, role.end_time = start, end


async def create_role(session: AsyncSession, fields: Dict, created_by: Optional[str] = None) -> Dict:
    """
    Create a role.

    Raises:
        ValidationFailed: If the name is missing, positions_total < 1 or a time is malformed
        NotFound: If domain_id refers to a missing domain
    """
    if not fields.get("name") or not str(fields["name"]).strip():
        raise ValidationFailed("Role name is required")
    if fields.get("domain_id") is not None:
        await _get_domain_row(session, fields["domain_id"])

    role = Role(created_by=created_by, positions_total=1)
    _apply_role_fields(role, fields)
    session.add(role)
    await session.commit()
    await session.refresh(role)
    logger.info(f"Created role {role.id} ({role.name!r})")
    return role_to_dict(role, 0)


async def update_role(session: AsyncSession, role_id: int, updates: Dict) -> Dict:
    """
    Update a role with the fields present in ``updates``.

    Raises:
        NotFound: If the role (or a new domain_id) does not exist
        ValidationFailed: On invalid values
    """
    role = await _get_role_row(session, role_id)
    if updates.get("domain_id") is not None:
        await _get_domain_row(session, updates["domain_id"])

    _apply_role_fields(role, updates)
    await session.commit()
    await session.refresh(role)
    return role_to_dict(role, await count_confirmed(session, role_id))


async def duplicate_role(session: AsyncSession, role_id: int, created_by: Optional[str] = None) -> Dict:
    """Copy a role's details (not its signups) into a new role."""
    source = await _get_role_row(session, role_id)
    copy = Role(
        name=source.name,
        description=source.description,
        location=source.location,
        event_date=source.event_date,
        start_time=source.start_time,
        end_time=source.end_time,
        positions_total=source.positions_total,
        estimate_duration_hours=source.estimate_duration_hours,
        domain_id=source.domain_id,
        leader_id=source.leader_id,
        created_by=created_by,
    )
    session.add(copy)
    await session.commit()
    await session.refresh(copy)
    logger.info(f"Duplicated role {role_id} as {copy.id}")
    return role_to_dict(copy, 0)


async def delete_role(session: AsyncSession, role_id: int) -> bool:
    """
    Delete a role that has no confirmed signups. Cancelled signups go with it.

    Raises:
        NotFound: If the role does not exist
        ValidationFailed: If confirmed signups remain
    """
    role = await _get_role_row(session, role_id)
    if await count_confirmed(session, role_id) > 0:
        raise ValidationFailed(
            "Cannot delete role with confirmed signups. Please cancel all signups first."
        )

    cancelled = (await session.execute(select(Signup).where(Signup.role_id == role_id))).scalars().all()
    for signup in cancelled:
        await session.delete(signup)
    await session.delete(role)
    await session.commit()
    logger.info(f"Deleted role {role_id}")
    return True


async def dashboard_stats(session: AsyncSession, today: Optional[date] = None) -> Dict:
    """Totals for the admin dashboard."""
    roles = (await session.execute(select(Role))).scalars().all()
    counts = await _confirmed_counts(session, [r.id for r in roles])
    today = today or datetime.now(PACIFIC_TZ).date()

    total_positions = sum(r.positions_total for r in roles)
    filled_positions = sum(counts.get(r.id, 0) for r in roles)

    upcoming = [r for r in roles if r.event_date and r.event_date >= today]
    critical = [
        r
        for r in upcoming
        if (counts.get(r.id, 0) / r.positions_total) * 100 < CRITICAL_FILL_PERCENT
        and (r.event_date - today).days <= CRITICAL_DAYS
    ]

    return {
        "total_positions": total_positions,
        "filled_positions": filled_positions,
        "fill_percentage": (filled_positions / total_positions * 100) if total_positions else 0,
        "total_roles": len(roles),
        "upcoming_roles": len(upcoming),
        "critical_roles": len(critical),
    }


# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------


async def list_domains(session: AsyncSession) -> List[Dict]:
    """List domains by name with their leader and role count."""
    result = await session.execute(
        select(Domain).options(selectinload(Domain.leader)).order_by(Domain.name.asc())
    )
    domains = result.scalars().all()

    role_counts = dict(
        (
            await session.execute(
                select(Role.domain_id, func.count(Role.id))
                .where(Role.domain_id.is_not(None))
                .group_by(Role.domain_id)
            )
        ).all()
    )

    items = []
    for domain in domains:
        data = domain_to_dict(domain)
        data["leader"] = _person_brief(domain.leader)
        data["role_count"] = role_counts.get(domain.id, 0)
        items.append(data)
    return items


async def get_domain(session: AsyncSession, domain_id: int) -> Dict:
    """
    Get a domain with its leader and roles (with fill counts).

    Raises:
        NotFound: If the domain does not exist
    """
    result = await session.execute(
        select(Domain)
        .options(selectinload(Domain.leader), selectinload(Domain.roles))
        .where(Domain.id == domain_id)
    )
    domain = result.scalar_one_or_none()
    if domain is None:
        raise NotFound("Domain not found")

    counts = await _confirmed_counts(session, [r.id for r in domain.roles])
    data = domain_to_dict(domain)
    data["leader"] = _person_brief(domain.leader)
    data["roles"] = [
        role_to_dict(r, counts.get(r.id, 0))
        for r in sorted(domain.roles, key=lambda r: (r.event_date is None, r.event_date, r.start_time or ""))
    ]
    return data


async def create_domain(session: AsyncSession, fields: Dict) -> Dict:
    """
    Create a domain.

    Raises:
        ValidationFailed: If the name is missing
    """
    name = (fields.get("name") or "").strip()
    if not name:
        raise ValidationFailed("Domain name is required")
    domain = Domain(name=name, description=fields.get("description"), leader_id=fields.get("leader_id"))
    session.add(domain)
    await session.commit()
    await session.refresh(domain)
    logger.info(f"Created domain {domain.id} ({domain.name!r})")
    return domain_to_dict(domain)


async def update_domain(session: AsyncSession, domain_id: int, updates: Dict) -> Dict:
    """Update name, description, or leader of a domain."""
    domain = await _get_domain_row(session, domain_id)
    for name in DOMAIN_FIELDS:
        if name not in updates:
            continue
        value = updates[name]
        if name == "name":
            value = (value or "").strip()
            if not value:
                raise ValidationFailed("Domain name is required")
        setattr(domain, name, value)
    await session.commit()
    await session.refresh(domain)
    return domain_to_dict(domain)


async def delete_domain(session: AsyncSession, domain_id: int) -> bool:
    """
    Delete a domain that no role references.

    Raises:
        NotFound: If the domain does not exist
        ValidationFailed: If roles are still assigned to it
    """
    domain = await _get_domain_row(session, domain_id)
    role_count = (
        await session.execute(select(func.count(Role.id)).where(Role.domain_id == domain_id))
    ).scalar_one()
    if role_count > 0:
        raise ValidationFailed(
            f"Cannot delete domain with {role_count} assigned roles. Reassign roles first."
        )
    await session.delete(domain)
    await session.commit()
    logger.info(f"Deleted domain {domain_id}")
    return True


async def assign_leader(session: AsyncSession, domain_id: int, leader_id: Optional[str]) -> Dict:
    """
    Set (or clear, with None) the leader of a domain.

    Raises:
        NotFound: If the domain or the person does not exist
    """
    domain = await _get_domain_row(session, domain_id)
    if leader_id is not None:
        person = (await session.execute(select(Person.id).where(Person.id == leader_id))).scalar_one_or_none()
        if person is None:
            raise NotFound("Leader not found")
    domain.leader_id = leader_id
    await session.commit()
    await session.refresh(domain)
    logger.info(f"Domain {domain_id} leader set to {leader_id}")
    return domain_to_dict(domain)
