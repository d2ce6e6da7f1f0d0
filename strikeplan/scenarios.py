"""
Strike scenario lifecycle and read models.

A scenario is created in Draft with its positions generated up front. Draft
scenarios may be edited, regenerated or deleted; activation, completion and
cancellation move it through the rest of its life.
"""

import datetime as dt
import logging
from collections import defaultdict

from pydantic import BaseModel

from strikeplan import generator, store
from strikeplan.errors import InvalidStateError, ValidationFailedError
from strikeplan.generator import GenerationStats
from strikeplan.headcount import date_range, is_weekend, validate_reduction_percent
from strikeplan.models import (
    Actor,
    AffectedJobType,
    AssignmentStatus,
    PositionStatus,
    Scenario,
    ScenarioPosition,
    ScenarioStatus,
    ShiftType,
)
from strikeplan.planner import Planner

logger = logging.getLogger(__name__)

FILLED = frozenset({PositionStatus.ASSIGNED, PositionStatus.CONFIRMED})


def validate_scenario_inputs(
    start_date: dt.date,
    end_date: dt.date,
    affected_job_types: list[AffectedJobType],
) -> None:
    if start_date > end_date:
        raise ValidationFailedError("Start date must be before or equal to end date")
    seen: set[str] = set()
    for ajt in affected_job_types:
        validate_reduction_percent(ajt.reduction_percent)
        if ajt.job_type_id in seen:
            raise ValidationFailedError(
                f"Job type {ajt.job_type_id} is listed more than once"
            )
        seen.add(ajt.job_type_id)


class CreatedScenario(BaseModel):
    scenario_id: str
    stats: GenerationStats


def create_scenario(
    planner: Planner,
    actor: Actor,
    *,
    health_system_id: str,
    name: str,
    start_date: dt.date,
    end_date: dt.date,
    affected_job_types: list[AffectedJobType],
    hospital_id: str | None = None,
    description: str | None = None,
) -> CreatedScenario:
    planner.authorizer.require_scope(actor, health_system_id)
    validate_scenario_inputs(start_date, end_date, affected_job_types)

    now = planner.now()
    scenario = Scenario(
        id=planner.db.new_id(),
        health_system_id=health_system_id,
        hospital_id=hospital_id,
        name=name,
        description=description,
        start_date=start_date,
        end_date=end_date,
        affected_job_types=affected_job_types,
        status=ScenarioStatus.DRAFT,
        created_by=actor.id,
        created_at=now,
        updated_at=now,
    )

    with planner.db.transaction():
        positions, affected_services = generator.build_positions(
            planner.db, scenario
        )
        store.save(planner.db, scenario)
        stats = generator.insert_positions(
            planner.db, scenario, positions, affected_services
        )

    logger.info("created scenario %s (%s)", scenario.id, scenario.name)
    planner.audit.record(
        actor.id,
        "CREATE",
        "STRIKE_SCENARIO",
        scenario.id,
        {
            "name": name,
            "startDate": start_date.isoformat(),
            "endDate": end_date.isoformat(),
            **stats.model_dump(),
        },
    )
    return CreatedScenario(scenario_id=scenario.id, stats=stats)


def _require_draft(scenario: Scenario, action: str) -> None:
    if scenario.status != ScenarioStatus.DRAFT:
        raise InvalidStateError(f"Can only {action} scenarios in Draft status")


def update_scenario(
    planner: Planner,
    actor: Actor,
    scenario_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
    start_date: dt.date | None = None,
    end_date: dt.date | None = None,
    affected_job_types: list[AffectedJobType] | None = None,
) -> GenerationStats | None:
    """
    Patch a Draft scenario. Changing the date range or affected job types
    regenerates every position; returns the new stats when that happens.
    """
    db = planner.db
    with db.transaction():
        scenario = store.require_scenario(db, scenario_id)
        _require_draft(scenario, "update")
        planner.authorizer.require_scope(actor, scenario.health_system_id)

        new_start = start_date or scenario.start_date
        new_end = end_date or scenario.end_date
        new_affected = (
            affected_job_types
            if affected_job_types is not None
            else scenario.affected_job_types
        )
        validate_scenario_inputs(new_start, new_end, new_affected)

        needs_regeneration = (
            start_date is not None
            or end_date is not None
            or affected_job_types is not None
        )

        changes: dict = {
            "start_date": new_start,
            "end_date": new_end,
            "affected_job_types": new_affected,
            "updated_at": planner.now(),
        }
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        # the stored record is only replaced once regeneration has succeeded
        updated = scenario.model_copy(update=changes)

        stats = generator.regenerate(db, updated) if needs_regeneration else None
        store.save(db, updated)
        scenario = updated

    planner.audit.record(
        actor.id,
        "UPDATE",
        "STRIKE_SCENARIO",
        scenario.id,
        {
            "name": name,
            "regeneratedPositions": needs_regeneration,
            **(stats.model_dump() if stats else {}),
        },
    )
    return stats


def _change_status(
    planner: Planner,
    actor: Actor,
    scenario_id: str,
    *,
    allowed_from: frozenset[ScenarioStatus],
    target: ScenarioStatus,
    action: str,
    failure: str,
    details: dict | None = None,
) -> Scenario:
    db = planner.db
    with db.transaction():
        scenario = store.require_scenario(db, scenario_id)
        if scenario.status not in allowed_from:
            raise InvalidStateError(failure)
        planner.authorizer.require_scope(actor, scenario.health_system_id)

        scenario.status = target
        if target == ScenarioStatus.CANCELLED:
            scenario.is_active = False
        scenario.updated_at = planner.now()
        store.save(db, scenario)

    logger.info("scenario %s is now %s", scenario.id, target)
    planner.audit.record(
        actor.id,
        action,
        "STRIKE_SCENARIO",
        scenario.id,
        {"name": scenario.name, **(details or {})},
    )
    return scenario


def activate_scenario(planner: Planner, actor: Actor, scenario_id: str) -> Scenario:
    return _change_status(
        planner,
        actor,
        scenario_id,
        allowed_from=frozenset({ScenarioStatus.DRAFT}),
        target=ScenarioStatus.ACTIVE,
        action="ACTIVATE",
        failure="Can only activate scenarios in Draft status",
    )


def complete_scenario(planner: Planner, actor: Actor, scenario_id: str) -> Scenario:
    return _change_status(
        planner,
        actor,
        scenario_id,
        allowed_from=frozenset({ScenarioStatus.ACTIVE}),
        target=ScenarioStatus.COMPLETED,
        action="COMPLETE",
        failure="Can only complete scenarios in Active status",
    )


def cancel_scenario(
    planner: Planner, actor: Actor, scenario_id: str, reason: str | None = None
) -> Scenario:
    return _change_status(
        planner,
        actor,
        scenario_id,
        allowed_from=frozenset({ScenarioStatus.DRAFT, ScenarioStatus.ACTIVE}),
        target=ScenarioStatus.CANCELLED,
        action="CANCEL",
        failure="Cannot cancel a completed or already cancelled scenario",
        details={"reason": reason},
    )


def regenerate_positions(
    planner: Planner, actor: Actor, scenario_id: str
) -> GenerationStats:
    db = planner.db
    with db.transaction():
        scenario = store.require_scenario(db, scenario_id)
        _require_draft(scenario, "regenerate positions for")
        planner.authorizer.require_scope(actor, scenario.health_system_id)
        stats = generator.regenerate(db, scenario)

    planner.audit.record(
        actor.id,
        "REGENERATE",
        "STRIKE_SCENARIO",
        scenario.id,
        {"name": scenario.name, **stats.model_dump()},
    )
    return stats


def delete_scenario(planner: Planner, actor: Actor, scenario_id: str) -> None:
    db = planner.db
    with db.transaction():
        scenario = store.require_scenario(db, scenario_id)
        _require_draft(scenario, "delete")
        planner.authorizer.require_scope(actor, scenario.health_system_id)

        assignments = store.assignments_for_scenario(db, scenario_id)
        if any(a.status != AssignmentStatus.CANCELLED for a in assignments):
            raise InvalidStateError("Cannot delete scenario with existing assignments")

        for assignment in assignments:
            store.remove(db, assignment)
        for token in store.tokens_for_scenario(db, scenario_id):
            store.remove(db, token)
        generator.delete_positions(db, scenario_id)
        store.remove(db, scenario)

    logger.info("deleted scenario %s", scenario_id)
    planner.audit.record(
        actor.id, "DELETE", "STRIKE_SCENARIO", scenario_id, {"name": scenario.name}
    )


# --- read models ---


class Coverage(BaseModel):
    total: int
    filled: int
    open: int
    coverage_percent: int


class DateCoverage(Coverage):
    date: dt.date


class ScenarioSummary(BaseModel):
    scenario: Scenario
    total_positions: int
    filled_positions: int
    open_positions: int
    coverage_percent: int
    total_days: int
    coverage_by_date: list[DateCoverage]


def _coverage(positions: list[ScenarioPosition], *, empty_percent: int = 0) -> Coverage:
    total = len(positions)
    filled = sum(1 for p in positions if p.status in FILLED)
    percent = round(filled / total * 100) if total else empty_percent
    return Coverage(
        total=total, filled=filled, open=total - filled, coverage_percent=percent
    )


def _active_positions(planner: Planner, scenario_id: str) -> list[ScenarioPosition]:
    return [
        p for p in store.positions_for_scenario(planner.db, scenario_id) if p.is_active
    ]


def get_scenario_summary(planner: Planner, scenario_id: str) -> ScenarioSummary:
    scenario = store.require_scenario(planner.db, scenario_id)
    positions = _active_positions(planner, scenario_id)
    days = date_range(scenario.start_date, scenario.end_date)

    by_date: dict[dt.date, list[ScenarioPosition]] = defaultdict(list)
    for position in positions:
        by_date[position.date].append(position)

    overall = _coverage(positions)
    return ScenarioSummary(
        scenario=scenario,
        total_positions=overall.total,
        filled_positions=overall.filled,
        open_positions=overall.open,
        coverage_percent=overall.coverage_percent,
        total_days=len(days),
        coverage_by_date=[
            DateCoverage(date=day, **_coverage(by_date[day]).model_dump())
            for day in days
        ],
    )


class CalendarCell(BaseModel):
    date: dt.date
    is_weekend: bool
    am: Coverage
    pm: Coverage


class CalendarRow(BaseModel):
    service_id: str
    service_name: str
    service_code: str
    department_name: str | None = None
    dates: list[CalendarCell]


class CalendarView(BaseModel):
    scenario: Scenario
    dates: list[dt.date]
    grid: list[CalendarRow]


def get_calendar_view(planner: Planner, scenario_id: str) -> CalendarView:
    """Services as rows, dates as columns, AM/PM coverage per cell."""
    db = planner.db
    scenario = store.require_scenario(db, scenario_id)
    positions = _active_positions(planner, scenario_id)
    days = date_range(scenario.start_date, scenario.end_date)

    cells: dict[tuple[str, dt.date, ShiftType], list[ScenarioPosition]] = defaultdict(
        list
    )
    for position in positions:
        cells[(position.service_id, position.date, position.shift_type)].append(
            position
        )

    rows = []
    for service_id in sorted({p.service_id for p in positions}):
        service = store.find_service(db, service_id)
        if service is None:
            continue
        department = store.find_department(db, service.department_id)
        rows.append(
            CalendarRow(
                service_id=service.id,
                service_name=service.name,
                service_code=service.short_code,
                department_name=department.name if department else None,
                dates=[
                    CalendarCell(
                        date=day,
                        is_weekend=is_weekend(day),
                        am=_coverage(
                            cells[(service.id, day, ShiftType.AM)], empty_percent=100
                        ),
                        pm=_coverage(
                            cells[(service.id, day, ShiftType.PM)], empty_percent=100
                        ),
                    )
                    for day in days
                ],
            )
        )

    rows.sort(key=lambda r: r.service_name)
    return CalendarView(scenario=scenario, dates=days, grid=rows)


class OpenPosition(BaseModel):
    id: str
    date: dt.date
    shift_type: ShiftType
    shift_start: str
    shift_end: str
    position_number: int
    job_code: str
    service_name: str | None = None
    service_code: str | None = None
    department_name: str | None = None
    job_type_name: str | None = None
    job_type_code: str | None = None


def list_open_positions(
    planner: Planner,
    scenario_id: str,
    *,
    on_date: dt.date | None = None,
    service_id: str | None = None,
    shift_type: ShiftType | None = None,
) -> list[OpenPosition]:
    db = planner.db
    results = []
    for position in _active_positions(planner, scenario_id):
        if position.status != PositionStatus.OPEN:
            continue
        if on_date is not None and position.date != on_date:
            continue
        if service_id is not None and position.service_id != service_id:
            continue
        if shift_type is not None and position.shift_type != shift_type:
            continue

        service = store.find_service(db, position.service_id)
        department = (
            store.find_department(db, service.department_id) if service else None
        )
        job_type = store.find_job_type(db, position.job_type_id)
        results.append(
            OpenPosition(
                id=position.id,
                date=position.date,
                shift_type=position.shift_type,
                shift_start=position.shift_start,
                shift_end=position.shift_end,
                position_number=position.position_number,
                job_code=position.job_code,
                service_name=service.name if service else None,
                service_code=service.short_code if service else None,
                department_name=department.name if department else None,
                job_type_name=job_type.name if job_type else None,
                job_type_code=job_type.code if job_type else None,
            )
        )

    results.sort(
        key=lambda p: (p.date, p.service_name or "", p.shift_type, p.position_number)
    )
    return results


def list_scenarios(
    planner: Planner,
    *,
    health_system_id: str | None = None,
    hospital_id: str | None = None,
    status: ScenarioStatus | None = None,
) -> list[Scenario]:
    scenarios = [
        s
        for s in planner.db.of_type(Scenario)
        if (health_system_id is None or s.health_system_id == health_system_id)
        and (status is None or s.status == status)
        and (hospital_id is None or s.hospital_id in (None, hospital_id))
    ]
    return sorted(scenarios, key=lambda s: s.start_date, reverse=True)
