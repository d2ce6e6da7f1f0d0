"""
Provider matching for open scenario positions.

Candidates go through hard eligibility filters (availability, hospital
access, visa restriction, date/shift conflict) and the survivors are scored
and ranked. Results are a point-in-time snapshot; assignment creation
re-checks conflicts when it commits.
"""

import datetime as dt
import logging
from collections import defaultdict

from pydantic import BaseModel, Field

from strikeplan import store
from strikeplan.models import (
    AssignmentStatus,
    PositionStatus,
    Provider,
    ProviderAvailability,
    ScenarioPosition,
    ShiftType,
    SkillMatch,
)
from strikeplan.planner import Planner
from strikeplan.store import Database

logger = logging.getLogger(__name__)

SCORING = {
    "matched_skill": 10,
    "preferred_shift": 50,
    "home_department": 20,
    "home_hospital": 10,
    "per_assignment": -5,
    "missing_skill": -15,
}


class SkillCoverage(BaseModel):
    matched: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)

    @property
    def tier(self) -> SkillMatch:
        return skill_tier(len(self.matched), len(self.missing))


class RankedCandidate(BaseModel):
    provider_id: str
    provider_name: str
    provider_email: str | None = None
    job_type_code: str
    match_quality: SkillMatch
    is_preferred: bool
    matched_skills: list[str]
    missing_skills: list[str]
    current_assignment_count: int
    score: int
    is_home_department: bool
    is_home_hospital: bool
    availability_notes: str | None = None
    has_visa: bool = False


class PositionDetail(BaseModel):
    id: str
    scenario_id: str
    date: dt.date
    shift_type: ShiftType
    shift_start: str
    shift_end: str
    job_code: str
    position_number: int
    status: PositionStatus
    service_name: str
    service_code: str
    job_type_name: str
    job_type_code: str


class MatchResult(BaseModel):
    eligible: bool
    reason: str | None = None
    position: PositionDetail | None = None
    required_skill_count: int = 0
    matches: list[RankedCandidate] = Field(default_factory=list)


def skill_tier(matched_count: int, missing_count: int) -> SkillMatch:
    if missing_count == 0:
        return SkillMatch.PERFECT
    if matched_count > missing_count:
        return SkillMatch.GOOD
    return SkillMatch.PARTIAL


def skill_coverage(
    required_skill_ids: list[str], provider_skill_ids: set[str]
) -> SkillCoverage:
    coverage = SkillCoverage()
    for skill_id in required_skill_ids:
        if skill_id in provider_skill_ids:
            coverage.matched.append(skill_id)
        else:
            coverage.missing.append(skill_id)
    return coverage


def can_work_at_hospital(provider: Provider, hospital_id: str) -> bool:
    return (
        provider.hospital_id == hospital_id
        or hospital_id in provider.hospital_access_ids
    )


def visa_restricted(
    provider: Provider, job_type_code: str | None, hospital_id: str, fellow_code: str
) -> bool:
    """Visa-holding fellows may only work at their home hospital."""
    return (
        provider.has_visa
        and job_type_code == fellow_code
        and provider.hospital_id != hospital_id
    )


def is_available(
    availability: ProviderAvailability | None, shift_type: ShiftType
) -> bool:
    if availability is None:
        return True
    return availability.allows(shift_type)


def score_candidate(
    *,
    coverage: SkillCoverage,
    is_preferred: bool,
    is_home_department: bool,
    is_home_hospital: bool,
    assignment_count: int,
) -> int:
    score = SCORING["matched_skill"] * len(coverage.matched)
    score += SCORING["preferred_shift"] if is_preferred else 0
    score += SCORING["home_department"] if is_home_department else 0
    score += SCORING["home_hospital"] if is_home_hospital else 0
    score += SCORING["per_assignment"] * assignment_count
    score += SCORING["missing_skill"] * len(coverage.missing)
    return score


def rank_key(candidate: RankedCandidate) -> tuple[int, int, str]:
    return (
        -candidate.score,
        candidate.current_assignment_count,
        candidate.provider_name,
    )


def _skill_names(db: Database, skill_ids: list[str]) -> list[str]:
    names = []
    for skill_id in skill_ids:
        skill = store.find_skill(db, skill_id)
        if skill is not None:
            names.append(skill.name)
    return names


def _rejection(provider: Provider, position: ScenarioPosition, why: str) -> None:
    logger.debug(
        "provider %s rejected for position %s: %s", provider.id, position.id, why
    )


def evaluate_candidate(
    planner: Planner,
    position: ScenarioPosition,
    provider: Provider,
    *,
    required_skill_ids: list[str],
    job_type_code: str,
) -> RankedCandidate | None:
    """Apply the hard filters to one provider; score them if they survive."""
    db = planner.db

    availability = store.availability_for(db, provider.id, position.date)
    if not is_available(availability, position.shift_type):
        _rejection(provider, position, "unavailable")
        return None

    if not can_work_at_hospital(provider, position.hospital_id):
        _rejection(provider, position, "no hospital access")
        return None

    if visa_restricted(
        provider,
        job_type_code,
        position.hospital_id,
        planner.settings.fellow_job_type_code,
    ):
        _rejection(provider, position, "visa restricted to home hospital")
        return None

    held = store.live_assignments(db, position.scenario_id, provider.id)
    for assignment in held:
        other = store.find_position(db, assignment.scenario_position_id)
        if other is not None and other.slot == position.slot:
            _rejection(provider, position, "already booked on this shift")
            return None

    coverage = skill_coverage(required_skill_ids, provider.skill_ids)
    is_preferred = (
        availability.prefers(position.shift_type) if availability else False
    )
    home_department = provider.department_id == position.department_id
    home_hospital = provider.hospital_id == position.hospital_id

    return RankedCandidate(
        provider_id=provider.id,
        provider_name=provider.full_name,
        provider_email=provider.email,
        job_type_code=job_type_code,
        match_quality=coverage.tier,
        is_preferred=is_preferred,
        matched_skills=_skill_names(db, coverage.matched),
        missing_skills=_skill_names(db, coverage.missing),
        current_assignment_count=len(held),
        score=score_candidate(
            coverage=coverage,
            is_preferred=is_preferred,
            is_home_department=home_department,
            is_home_hospital=home_hospital,
            assignment_count=len(held),
        ),
        is_home_department=home_department,
        is_home_hospital=home_hospital,
        availability_notes=availability.notes if availability else None,
        has_visa=provider.has_visa,
    )


def find_matches(planner: Planner, position_id: str) -> MatchResult:
    """
    Rank every eligible provider for an open position: highest score first,
    then fewest current assignments, then provider name.
    """
    db = planner.db
    position = store.require_position(db, position_id)

    if position.status != PositionStatus.OPEN or not position.is_active:
        return MatchResult(eligible=False, reason="Position is not open")

    service = store.find_service(db, position.service_id)
    config = store.find_service_job_type(db, position.service_job_type_id)
    job_type = store.find_job_type(db, position.job_type_id)
    if service is None or config is None or job_type is None:
        return MatchResult(eligible=False, reason="Position data incomplete")

    providers = [
        p
        for p in db.of_type(Provider)
        if p.is_active and p.job_type_id == position.job_type_id
    ]

    matches = []
    for provider in providers:
        candidate = evaluate_candidate(
            planner,
            position,
            provider,
            required_skill_ids=config.required_skill_ids,
            job_type_code=job_type.code,
        )
        if candidate is not None:
            matches.append(candidate)

    matches.sort(key=rank_key)
    logger.debug(
        "position %s: %d of %d providers eligible",
        position.id,
        len(matches),
        len(providers),
    )

    return MatchResult(
        eligible=True,
        position=PositionDetail(
            id=position.id,
            scenario_id=position.scenario_id,
            date=position.date,
            shift_type=position.shift_type,
            shift_start=position.shift_start,
            shift_end=position.shift_end,
            job_code=position.job_code,
            position_number=position.position_number,
            status=position.status,
            service_name=service.name,
            service_code=service.short_code,
            job_type_name=job_type.name,
            job_type_code=job_type.code,
        ),
        required_skill_count=len(config.required_skill_ids),
        matches=matches,
    )


# --- workload and gap read models ---


class WorkloadEntry(BaseModel):
    assignment_id: str
    status: AssignmentStatus
    date: dt.date | None = None
    shift_type: ShiftType | None = None
    service_name: str | None = None


class ProviderWorkload(BaseModel):
    total_assignments: int
    assignments: list[WorkloadEntry]
    by_date: dict[dt.date, list[WorkloadEntry]]


class CoverageGap(BaseModel):
    position_id: str
    date: dt.date
    shift_type: ShiftType
    service_name: str | None = None
    service_code: str | None = None
    position_number: int


def get_provider_workload(
    planner: Planner, provider_id: str, scenario_id: str
) -> ProviderWorkload:
    db = planner.db
    entries = []
    for assignment in store.live_assignments(db, scenario_id, provider_id):
        position = store.find_position(db, assignment.scenario_position_id)
        service = store.find_service(db, position.service_id) if position else None
        entries.append(
            WorkloadEntry(
                assignment_id=assignment.id,
                status=assignment.status,
                date=position.date if position else None,
                shift_type=position.shift_type if position else None,
                service_name=service.name if service else None,
            )
        )

    by_date: dict[dt.date, list[WorkloadEntry]] = defaultdict(list)
    for entry in entries:
        if entry.date is not None:
            by_date[entry.date].append(entry)

    return ProviderWorkload(
        total_assignments=len(entries),
        assignments=entries,
        by_date=dict(by_date),
    )


def get_coverage_gaps(planner: Planner, scenario_id: str) -> list[CoverageGap]:
    db = planner.db
    gaps = []
    for position in store.positions_for_scenario(db, scenario_id):
        if not position.is_active or position.status != PositionStatus.OPEN:
            continue
        service = store.find_service(db, position.service_id)
        gaps.append(
            CoverageGap(
                position_id=position.id,
                date=position.date,
                shift_type=position.shift_type,
                service_name=service.name if service else None,
                service_code=service.short_code if service else None,
                position_number=position.position_number,
            )
        )

    gaps.sort(
        key=lambda g: (g.date, g.service_name or "", g.shift_type, g.position_number)
    )
    return gaps
