"""
Volunteer roster for admins: everyone with their confirmed signups, hours and waiver status.
"""

from typing import List, Dict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from volunteer_hub.database.models import Person, Signup, SignupStatus
from volunteer_hub.services import waiver_service
from volunteer_hub.utils.time_display import calculate_duration


async def list_volunteers(session: AsyncSession) -> List[Dict]:
    """
    All people ordered by last name.

    Hours are summed over confirmed signups; flexible or untimed roles count as zero.
    ``has_signed_waiver`` means a signature for the current waiver version.
    """
    result = await session.execute(
        select(Person)
        .options(selectinload(Person.signups).selectinload(Signup.role))
        .order_by(Person.last_name.asc().nulls_last(), Person.first_name.asc().nulls_last())
        .execution_options(populate_existing=True)
    )
    people = result.scalars().all()
    signed = await waiver_service.get_signed_volunteer_ids(session)

    roster = []
    for person in people:
        confirmed = [s for s in person.signups if s.status == SignupStatus.CONFIRMED.value and s.role]
        total_hours = sum(
            calculate_duration(s.role.start_time, s.role.end_time) or 0 for s in confirmed
        )
        roster.append(
            {
                "id": person.id,
                "email": person.email,
                "first_name": person.first_name,
                "last_name": person.last_name,
                "phone": person.phone,
                "role": person.role,
                "team_club_affiliation_id": person.team_club_affiliation_id,
                "signups": [
                    {
                        "id": s.id,
                        "status": s.status,
                        "signed_up_at": s.signed_up_at.isoformat() if s.signed_up_at else None,
                        "role": {
                            "id": s.role.id,
                            "name": s.role.name,
                            "event_date": s.role.event_date.isoformat() if s.role.event_date else None,
                            "start_time": s.role.start_time,
                            "end_time": s.role.end_time,
                        },
                    }
                    for s in confirmed
                ],
                "total_signups": len(confirmed),
                "total_hours": round(total_hours, 1),
                "has_signed_waiver": person.id in signed,
            }
        )
    return roster
