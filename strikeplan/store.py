"""
Record lookups over the shared key/value store.

``require_*`` helpers raise ``NotFoundError``; plain ``find_*`` helpers return
``None``. Scans are linear, the store is sized for one health system.
"""

from datetime import date
from typing import TypeAlias

from strikeplan.database import InMemoryKeyValueDatabase, key
from strikeplan.errors import NotFoundError
from strikeplan.models import (
    AssignmentStatus,
    ClaimToken,
    Department,
    Hospital,
    JobType,
    Provider,
    ProviderAvailability,
    Scenario,
    ScenarioAssignment,
    ScenarioPosition,
    Service,
    ServiceJobTypeConfig,
    ShiftType,
    Skill,
)

Database: TypeAlias = InMemoryKeyValueDatabase[str, object]

HOSPITAL = "hospital"
DEPARTMENT = "department"
JOB_TYPE = "job_type"
SKILL = "skill"
SERVICE = "service"
SERVICE_JOB_TYPE = "service_job_type"
PROVIDER = "provider"
AVAILABILITY = "availability"
SCENARIO = "scenario"
POSITION = "position"
ASSIGNMENT = "assignment"
CLAIM_TOKEN = "claim_token"

_ENTITY_BY_TYPE: dict[type, str] = {
    Hospital: HOSPITAL,
    Department: DEPARTMENT,
    JobType: JOB_TYPE,
    Skill: SKILL,
    Service: SERVICE,
    ServiceJobTypeConfig: SERVICE_JOB_TYPE,
    Provider: PROVIDER,
    ProviderAvailability: AVAILABILITY,
    Scenario: SCENARIO,
    ScenarioPosition: POSITION,
    ScenarioAssignment: ASSIGNMENT,
    ClaimToken: CLAIM_TOKEN,
}


def save(db: Database, record) -> None:
    db.put(key(_ENTITY_BY_TYPE[type(record)], record.id), record)


def remove(db: Database, record) -> None:
    db.delete(key(_ENTITY_BY_TYPE[type(record)], record.id))


def find_hospital(db: Database, hospital_id: str) -> Hospital | None:
    return db.get_as(key(HOSPITAL, hospital_id), Hospital)


def find_department(db: Database, department_id: str) -> Department | None:
    return db.get_as(key(DEPARTMENT, department_id), Department)


def find_job_type(db: Database, job_type_id: str) -> JobType | None:
    return db.get_as(key(JOB_TYPE, job_type_id), JobType)


def find_skill(db: Database, skill_id: str) -> Skill | None:
    return db.get_as(key(SKILL, skill_id), Skill)


def find_service(db: Database, service_id: str) -> Service | None:
    return db.get_as(key(SERVICE, service_id), Service)


def find_service_job_type(
    db: Database, config_id: str
) -> ServiceJobTypeConfig | None:
    return db.get_as(key(SERVICE_JOB_TYPE, config_id), ServiceJobTypeConfig)


def find_provider(db: Database, provider_id: str) -> Provider | None:
    return db.get_as(key(PROVIDER, provider_id), Provider)


def find_scenario(db: Database, scenario_id: str) -> Scenario | None:
    return db.get_as(key(SCENARIO, scenario_id), Scenario)


def require_scenario(db: Database, scenario_id: str) -> Scenario:
    scenario = find_scenario(db, scenario_id)
    if scenario is None:
        raise NotFoundError("Scenario not found")
    return scenario


def require_position(db: Database, position_id: str) -> ScenarioPosition:
    position = db.get_as(key(POSITION, position_id), ScenarioPosition)
    if position is None:
        raise NotFoundError("Position not found")
    return position


def require_provider(db: Database, provider_id: str) -> Provider:
    provider = find_provider(db, provider_id)
    if provider is None:
        raise NotFoundError("Provider not found")
    return provider


def require_assignment(db: Database, assignment_id: str) -> ScenarioAssignment:
    assignment = db.get_as(key(ASSIGNMENT, assignment_id), ScenarioAssignment)
    if assignment is None:
        raise NotFoundError("Assignment not found")
    return assignment


def find_position(db: Database, position_id: str) -> ScenarioPosition | None:
    return db.get_as(key(POSITION, position_id), ScenarioPosition)


def services_in_scope(
    db: Database, health_system_id: str, hospital_id: str | None
) -> list[Service]:
    services = [
        s
        for s in db.of_type(Service)
        if s.is_active
        and (
            s.hospital_id == hospital_id
            if hospital_id
            else s.health_system_id == health_system_id
        )
    ]
    return sorted(services, key=lambda s: (s.name, s.id))


def configs_for_service(
    db: Database, service_id: str
) -> list[ServiceJobTypeConfig]:
    configs = [
        c for c in db.of_type(ServiceJobTypeConfig) if c.service_id == service_id
    ]
    return sorted(configs, key=lambda c: c.id)


def positions_for_scenario(
    db: Database, scenario_id: str
) -> list[ScenarioPosition]:
    return [
        p for p in db.of_type(ScenarioPosition) if p.scenario_id == scenario_id
    ]


def assignments_for_scenario(
    db: Database, scenario_id: str
) -> list[ScenarioAssignment]:
    return [
        a
        for a in db.of_type(ScenarioAssignment)
        if a.scenario_id == scenario_id
    ]


def live_assignments(
    db: Database, scenario_id: str, provider_id: str
) -> list[ScenarioAssignment]:
    """Non-cancelled assignments held by one provider in one scenario."""
    return [
        a
        for a in db.of_type(ScenarioAssignment)
        if a.scenario_id == scenario_id
        and a.provider_id == provider_id
        and a.status != AssignmentStatus.CANCELLED
    ]


def booked_slots(
    db: Database, scenario_id: str, provider_id: str
) -> set[tuple[date, ShiftType]]:
    slots: set[tuple[date, ShiftType]] = set()
    for assignment in live_assignments(db, scenario_id, provider_id):
        position = find_position(db, assignment.scenario_position_id)
        if position is not None:
            slots.add(position.slot)
    return slots


def availability_for(
    db: Database, provider_id: str, day: date
) -> ProviderAvailability | None:
    return next(
        (
            a
            for a in db.of_type(ProviderAvailability)
            if a.provider_id == provider_id and a.date == day
        ),
        None,
    )


def find_claim_token(db: Database, token: str) -> ClaimToken | None:
    return next(
        (t for t in db.of_type(ClaimToken) if t.token == token),
        None,
    )


def tokens_for_scenario(db: Database, scenario_id: str) -> list[ClaimToken]:
    return [t for t in db.of_type(ClaimToken) if t.scenario_id == scenario_id]
