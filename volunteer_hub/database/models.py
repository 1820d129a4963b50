"""
SQLAlchemy ORM models for the volunteer hub.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from volunteer_hub.database.db import Base


class PersonRole(str, enum.Enum):
    """Access level of a person."""

    VOLUNTEER = "volunteer"
    VOLUNTEER_LEADER = "volunteer_leader"
    ADMIN = "admin"


class SignupStatus(str, enum.Enum):
    """Signup lifecycle status."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class TeamClubAffiliation(Base):
    """Teams and clubs a volunteer can be affiliated with."""

    __tablename__ = "team_club_affiliations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Person(Base):
    """Profile row for an account issued by the auth provider."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)  # Identity id issued by the auth provider
    email = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    role = Column(String(32), default=PersonRole.VOLUNTEER.value, nullable=False)
    emergency_contact_name = Column(String, nullable=True)
    emergency_contact_phone = Column(String, nullable=True)
    team_club_affiliation_id = Column(
        Integer, ForeignKey("team_club_affiliations.id", ondelete="SET NULL"), nullable=True
    )
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    affiliation = relationship("TeamClubAffiliation")
    signups = relationship("Signup", back_populates="volunteer")
    waivers = relationship("Waiver", back_populates="volunteer")

    __table_args__ = (
        Index("idx_profiles_email_lower", func.lower(email), unique=True),
        Index("idx_profiles_role", "role"),
    )


class Domain(Base):
    """Named grouping of roles under an optional leader."""

    __tablename__ = "volunteer_leader_domains"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    leader_id = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    leader = relationship("Person", foreign_keys=[leader_id])
    roles = relationship("Role", back_populates="domain")

    __table_args__ = (Index("idx_domains_name", "name"),)


class Role(Base):
    """Capacity-limited volunteer slot on the event schedule."""

    __tablename__ = "volunteer_roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    event_date = Column(Date, nullable=True)
    start_time = Column(String(8), nullable=True)  # HH:MM, "00:00"/"00:00" means flexible
    end_time = Column(String(8), nullable=True)
    positions_total = Column(Integer, nullable=False, default=1)
    estimate_duration_hours = Column(Float, nullable=True)
    domain_id = Column(Integer, ForeignKey("volunteer_leader_domains.id"), nullable=True)
    leader_id = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    domain = relationship("Domain", back_populates="roles")
    leader = relationship("Person", foreign_keys=[leader_id])
    creator = relationship("Person", foreign_keys=[created_by])
    signups = relationship("Signup", back_populates="role")

    __table_args__ = (
        CheckConstraint("positions_total >= 1", name="ck_volunteer_roles_positions_total"),
        Index("idx_volunteer_roles_event_date", "event_date"),
        Index("idx_volunteer_roles_domain", "domain_id"),
    )


class Signup(Base):
    """Reservation of one position on a role."""

    __tablename__ = "signups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    volunteer_id = Column(
        String(36), ForeignKey("profiles.id", name="signups_volunteer_id_fkey"), nullable=False
    )
    role_id = Column(Integer, ForeignKey("volunteer_roles.id"), nullable=False)
    status = Column(String(16), default=SignupStatus.CONFIRMED.value, nullable=False)
    phone = Column(String, nullable=True)
    waiver_signed = Column(Boolean, default=False, nullable=False)
    signed_up_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    volunteer = relationship("Person", back_populates="signups")
    role = relationship("Role", back_populates="signups")

    __table_args__ = (
        UniqueConstraint("volunteer_id", "role_id", name="uq_signups_volunteer_role"),
        Index("idx_signups_role_status", "role_id", "status"),
        Index("idx_signups_volunteer", "volunteer_id"),
    )


class Waiver(Base):
    """Append-only record of a signed liability waiver."""

    __tablename__ = "waivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    volunteer_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    signature_name = Column(String, nullable=False)
    ip_address = Column(String, nullable=True)
    waiver_version = Column(Integer, nullable=False)
    waiver_text = Column(Text, nullable=False)  # Snapshot at signing time
    parent_guardian_name = Column(String, nullable=True)
    parent_guardian_email = Column(String, nullable=True)
    parent_guardian_phone = Column(String, nullable=True)
    parent_signature_name = Column(String, nullable=True)
    parent_signed_at = Column(DateTime(timezone=True), nullable=True)
    agreed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    volunteer = relationship("Person", back_populates="waivers")

    __table_args__ = (
        Index("idx_waivers_volunteer_version", "volunteer_id", "waiver_version"),
    )


class WaiverSettings(Base):
    """Singleton row holding the current waiver text and version."""

    __tablename__ = "waiver_settings"

    id = Column(Integer, primary_key=True, default=1)
    waiver_text = Column(Text, nullable=False, default="")
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (CheckConstraint("id = 1", name="ck_waiver_settings_singleton"),)


class Setting(Base):
    """Application configuration overrides."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
