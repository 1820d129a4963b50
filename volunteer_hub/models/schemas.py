"""
Pydantic models for API request/response validation.
"""

from datetime import date
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, model_validator


class MagicLinkRequest(BaseModel):
    """Request a one-time sign-in link."""

    email: str
    redirect_to: Optional[str] = None


class SignOutResponse(BaseModel):
    success: bool = True
    remote_revoked: bool


class SessionResponse(BaseModel):
    """Signed-in account and profile (profile may still be missing for a brand-new account)."""

    user: Optional[dict] = None
    profile: Optional[dict] = None
    is_admin: bool = False


class RoleCreate(BaseModel):
    """Fields for creating a role. ``flexible_time`` stores the no-fixed-time sentinel."""

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    location: Optional[str] = None
    event_date: Optional[date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    flexible_time: bool = False
    positions_total: int = Field(1, ge=1)
    estimate_duration_hours: Optional[float] = Field(None, ge=0)
    domain_id: Optional[int] = None
    leader_id: Optional[str] = None


class RoleUpdate(BaseModel):
    """Partial update; only fields that are sent are changed."""

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    location: Optional[str] = None
    event_date: Optional[date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    flexible_time: Optional[bool] = None
    positions_total: Optional[int] = Field(None, ge=1)
    estimate_duration_hours: Optional[float] = Field(None, ge=0)
    domain_id: Optional[int] = None
    leader_id: Optional[str] = None


class DomainCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    leader_id: Optional[str] = None


class DomainUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    leader_id: Optional[str] = None


class AssignLeaderRequest(BaseModel):
    """Assign an existing person by id, or provision one by email."""

    leader_id: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self):
        if self.email and not (self.first_name and self.last_name):
            raise ValueError("first_name and last_name are required with email")
        return self


class SignupCreate(BaseModel):
    role_id: int
    phone: Optional[str] = None


class AddVolunteerRequest(BaseModel):
    """Admin/leader adding someone else to a role."""

    email: str = Field(..., min_length=3)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    team_club_affiliation_id: Optional[int] = None


class ParentGuardianInfo(BaseModel):
    parent_guardian_name: Optional[str] = None
    parent_guardian_email: Optional[str] = None
    parent_guardian_phone: Optional[str] = None
    parent_signature_name: Optional[str] = None


class VolunteerSignupRequest(ParentGuardianInfo):
    """Public signup form: personal details plus the role to sign up for."""

    role_id: int
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    team_club_affiliation_id: Optional[int] = None
    is_minor: bool = False

    @model_validator(mode="after")
    def check_minor_consent(self):
        if self.is_minor and not (
            self.parent_guardian_name and self.parent_guardian_email and self.parent_signature_name
        ):
            raise ValueError("Parent/guardian name, email and signature are required for minors")
        return self


class NewUserSignupRequest(ParentGuardianInfo):
    """Privileged side-channel for an account created moments ago."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str
    role_id: int
    phone: Optional[str] = None
    waiver_minor: bool = False
    volunteer_signature_name: Optional[str] = None


class WaiverUpdate(BaseModel):
    waiver_text: str = Field(..., min_length=1)


class WaiverSignRequest(ParentGuardianInfo):
    signature_name: str = Field(..., min_length=1)


class WaiverStatusResponse(BaseModel):
    signed: bool
    current_version: int


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    team_club_affiliation_id: Optional[int] = None


class AffiliationResponse(BaseModel):
    id: int
    name: str
    sort_order: int = 0


class DashboardStatsResponse(BaseModel):
    total_positions: int
    filled_positions: int
    fill_percentage: float
    total_roles: int
    upcoming_roles: int
    critical_roles: int


class SignupResultResponse(BaseModel):
    """Outcome of a self-service signup."""

    volunteer_id: str
    email: str
    first_name: str
    last_name: str
    signup: dict
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class AddVolunteerResponse(BaseModel):
    volunteer_id: str
    created: bool
    signup: dict


class VolunteerListResponse(BaseModel):
    volunteers: List[dict]
