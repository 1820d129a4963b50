"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-03-02 09:00:00.000000

Creates all tables from the current models:
- People: profiles, team_club_affiliations
- Catalog: volunteer_leader_domains, volunteer_roles
- Registrar: signups (unique per volunteer and role)
- Waivers: waivers, waiver_settings
- Runtime overrides: settings
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from scratch."""
    from volunteer_hub.database.db import Base
    from volunteer_hub.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)

    # The waiver ledger always has a current version to compare signatures against
    op.execute(
        sa.text(
            "INSERT INTO waiver_settings (id, waiver_text, version) VALUES (1, '', 1) "
            "ON CONFLICT (id) DO NOTHING"
        )
    )


def downgrade() -> None:
    """Drop all tables."""
    from volunteer_hub.database.db import Base
    from volunteer_hub.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
