"""
Domain models for strike staffing: organisation reference data, providers,
scenarios, generated positions, assignments and claim tokens.
"""

import datetime as dt
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ShiftType(StrEnum):
    AM = "AM"
    PM = "PM"


class ScenarioStatus(StrEnum):
    DRAFT = "Draft"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PositionStatus(StrEnum):
    OPEN = "Open"
    ASSIGNED = "Assigned"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


class AssignmentStatus(StrEnum):
    ACTIVE = "Active"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


class AvailabilityType(StrEnum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    PARTIAL = "partial"


class SkillMatch(StrEnum):
    PERFECT = "Perfect"
    GOOD = "Good"
    PARTIAL = "Partial"


class ActorRole(StrEnum):
    SUPER_ADMIN = "super_admin"
    HEALTH_SYSTEM_ADMIN = "health_system_admin"
    HOSPITAL_ADMIN = "hospital_admin"
    DEPARTMENTAL_ADMIN = "departmental_admin"


# --- organisation reference data (read-only to the core) ---


class Hospital(BaseModel):
    id: str
    health_system_id: str
    name: str
    short_code: str
    is_active: bool = True


class Department(BaseModel):
    id: str
    hospital_id: str
    health_system_id: str
    name: str
    is_active: bool = True


class JobType(BaseModel):
    id: str
    health_system_id: str
    name: str
    code: str
    is_active: bool = True


class Skill(BaseModel):
    id: str
    name: str
    category: str = ""
    is_active: bool = True


class Service(BaseModel):
    id: str
    department_id: str
    hospital_id: str
    health_system_id: str
    name: str
    short_code: str
    day_shift_start: str = "07:00"
    day_shift_end: str = "19:00"
    night_shift_start: str = "19:00"
    night_shift_end: str = "07:00"
    operates_days: bool = True
    operates_nights: bool = True
    operates_weekends: bool = True
    default_headcount: int = Field(default=1, ge=0)
    is_active: bool = True


class ServiceJobTypeConfig(BaseModel):
    """
    Per (service, job type) staffing template. Every optional field falls
    back to the service default, see ``headcount.resolve_shift_config``.
    """

    id: str
    service_id: str
    job_type_id: str
    day_shift_start: str | None = None
    day_shift_end: str | None = None
    night_shift_start: str | None = None
    night_shift_end: str | None = None
    operates_days: bool | None = None
    operates_nights: bool | None = None
    headcount: int | None = Field(default=None, ge=0)
    weekday_am_headcount: int | None = Field(default=None, ge=0)
    weekday_pm_headcount: int | None = Field(default=None, ge=0)
    weekend_am_headcount: int | None = Field(default=None, ge=0)
    weekend_pm_headcount: int | None = Field(default=None, ge=0)
    required_skill_ids: list[str] = Field(default_factory=list)


class Provider(BaseModel):
    id: str
    health_system_id: str
    hospital_id: str
    department_id: str
    job_type_id: str
    first_name: str
    last_name: str
    email: str | None = None
    has_visa: bool = False
    is_active: bool = True
    skill_ids: set[str] = Field(default_factory=set)
    hospital_access_ids: set[str] = Field(default_factory=set)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ProviderAvailability(BaseModel):
    id: str
    provider_id: str
    date: dt.date
    availability_type: AvailabilityType = AvailabilityType.AVAILABLE
    am_available: bool = True
    pm_available: bool = True
    am_preferred: bool = False
    pm_preferred: bool = False
    notes: str | None = None

    def allows(self, shift_type: ShiftType) -> bool:
        if self.availability_type == AvailabilityType.UNAVAILABLE:
            return False
        if shift_type == ShiftType.AM:
            return self.am_available
        return self.pm_available

    def prefers(self, shift_type: ShiftType) -> bool:
        if shift_type == ShiftType.AM:
            return self.am_preferred
        return self.pm_preferred


# --- scenario records ---


class AffectedJobType(BaseModel):
    job_type_id: str
    reduction_percent: float


class Scenario(BaseModel):
    id: str
    health_system_id: str
    hospital_id: str | None = None
    name: str
    description: str | None = None
    start_date: dt.date
    end_date: dt.date
    affected_job_types: list[AffectedJobType] = Field(default_factory=list)
    status: ScenarioStatus = ScenarioStatus.DRAFT
    is_active: bool = True
    created_by: str
    created_at: dt.datetime
    updated_at: dt.datetime

    @property
    def reduction_map(self) -> dict[str, float]:
        return {
            ajt.job_type_id: ajt.reduction_percent
            for ajt in self.affected_job_types
        }


class ScenarioPosition(BaseModel):
    id: str
    scenario_id: str
    service_id: str
    service_job_type_id: str
    job_type_id: str
    hospital_id: str
    department_id: str
    date: dt.date
    shift_type: ShiftType
    shift_start: str
    shift_end: str
    position_number: int
    job_code: str
    original_headcount: int
    scenario_headcount: int
    status: PositionStatus = PositionStatus.OPEN
    is_active: bool = True

    @property
    def slot(self) -> tuple[dt.date, ShiftType]:
        return (self.date, self.shift_type)


class ScenarioAssignment(BaseModel):
    id: str
    scenario_position_id: str
    provider_id: str
    scenario_id: str
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    assigned_at: dt.datetime
    assigned_by: str
    notes: str | None = None
    cancelled_at: dt.datetime | None = None
    cancelled_by: str | None = None
    cancel_reason: str | None = None


class ClaimToken(BaseModel):
    id: str
    scenario_id: str
    provider_id: str
    token: str
    expires_at: dt.datetime
    created_by: str
    created_at: dt.datetime


# --- collaborators ---


class Actor(BaseModel):
    id: str
    role: ActorRole
    health_system_id: str | None = None
    hospital_id: str | None = None
    department_id: str | None = None
    is_active: bool = True


class AuditRecord(BaseModel):
    actor_id: str
    action: str
    resource_type: str
    resource_id: str
    changes: dict[str, Any] = Field(default_factory=dict)
    timestamp: dt.datetime
