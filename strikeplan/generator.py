"""
Position generation: expands a scenario's services and job-type templates
into one dated position per (service, job type, date, shift, sequence).
"""

import logging

from pydantic import BaseModel

from strikeplan import store
from strikeplan.errors import InvalidStateError
from strikeplan.headcount import (
    calculate_scenario_headcount,
    date_range,
    generate_job_code,
    is_weekend,
    resolve_shift_config,
)
from strikeplan.models import (
    AssignmentStatus,
    PositionStatus,
    Scenario,
    ScenarioPosition,
    ScenarioStatus,
    ShiftType,
)
from strikeplan.store import Database

logger = logging.getLogger(__name__)


class GenerationStats(BaseModel):
    total_positions: int
    affected_services: int
    total_days: int


def build_positions(
    db: Database, scenario: Scenario
) -> tuple[list[ScenarioPosition], int]:
    """
    Materialise the positions for ``scenario`` without writing them, along
    with the number of services that had an affected job type.

    Only job types present in the reduction map receive positions when the
    map is non-empty; with an empty map every configured job type is
    generated at its normal headcount.
    """
    reductions = scenario.reduction_map
    days = date_range(scenario.start_date, scenario.end_date)
    positions: list[ScenarioPosition] = []
    affected_services = 0

    for service in store.services_in_scope(
        db, scenario.health_system_id, scenario.hospital_id
    ):
        configs = [
            c
            for c in store.configs_for_service(db, service.id)
            if not reductions or c.job_type_id in reductions
        ]
        if not configs:
            continue
        affected_services += 1

        department = store.find_department(db, service.department_id)
        hospital = store.find_hospital(db, service.hospital_id)

        for config in configs:
            job_type = store.find_job_type(db, config.job_type_id)
            if job_type is None:
                logger.warning(
                    "skipping config %s: job type %s not found",
                    config.id,
                    config.job_type_id,
                )
                continue

            resolved = resolve_shift_config(config, service)
            reduction = reductions.get(config.job_type_id, 0)

            for day in days:
                weekend = is_weekend(day)
                for shift_type in (ShiftType.AM, ShiftType.PM):
                    if not resolved.operates(shift_type, weekend=weekend):
                        continue

                    original = resolved.headcount(shift_type, weekend=weekend)
                    headcount = calculate_scenario_headcount(original, reduction)
                    shift_start, shift_end = resolved.window(shift_type)

                    for number in range(1, headcount + 1):
                        positions.append(
                            ScenarioPosition(
                                id=db.new_id(),
                                scenario_id=scenario.id,
                                service_id=service.id,
                                service_job_type_id=config.id,
                                job_type_id=config.job_type_id,
                                hospital_id=service.hospital_id,
                                department_id=service.department_id,
                                date=day,
                                shift_type=shift_type,
                                shift_start=shift_start,
                                shift_end=shift_end,
                                position_number=number,
                                job_code=generate_job_code(
                                    department.name if department else None,
                                    hospital.short_code if hospital else None,
                                    service.short_code,
                                    job_type.code,
                                    day,
                                    shift_type,
                                    number,
                                ),
                                original_headcount=original,
                                scenario_headcount=headcount,
                                status=PositionStatus.OPEN,
                            )
                        )

    return positions, affected_services


def insert_positions(
    db: Database,
    scenario: Scenario,
    positions: list[ScenarioPosition],
    affected_services: int,
) -> GenerationStats:
    for position in positions:
        store.save(db, position)

    stats = GenerationStats(
        total_positions=len(positions),
        affected_services=affected_services,
        total_days=(scenario.end_date - scenario.start_date).days + 1,
    )
    logger.info(
        "generated %d positions across %d services for scenario %s",
        stats.total_positions,
        stats.affected_services,
        scenario.id,
    )
    return stats


def generate_positions(db: Database, scenario: Scenario) -> GenerationStats:
    """Generate and insert every position for ``scenario``."""
    with db.transaction():
        positions, affected_services = build_positions(db, scenario)
        return insert_positions(db, scenario, positions, affected_services)


def delete_positions(db: Database, scenario_id: str) -> int:
    with db.transaction():
        positions = store.positions_for_scenario(db, scenario_id)
        for position in positions:
            store.remove(db, position)
    return len(positions)


def regenerate(db: Database, scenario: Scenario) -> GenerationStats:
    """
    Drop every position of a Draft scenario and generate afresh. Existing
    positions are never reconciled in place, so regeneration is refused
    while any assignment other than a cancelled one holds a position.
    Cancelled assignments go with the positions they point at.

    The new positions are built before anything is removed; a failure
    leaves the scenario as it was.
    """
    with db.transaction():
        if scenario.status != ScenarioStatus.DRAFT:
            raise InvalidStateError(
                "Can only regenerate positions for scenarios in Draft status"
            )
        assignments = store.assignments_for_scenario(db, scenario.id)
        if any(a.status != AssignmentStatus.CANCELLED for a in assignments):
            raise InvalidStateError(
                "Cannot regenerate positions while assignments exist"
            )

        positions, affected_services = build_positions(db, scenario)

        for assignment in assignments:
            store.remove(db, assignment)
        removed = delete_positions(db, scenario.id)
        logger.info("removed %d positions from scenario %s", removed, scenario.id)
        return insert_positions(db, scenario, positions, affected_services)
