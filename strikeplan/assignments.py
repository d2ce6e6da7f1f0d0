"""
Assignment lifecycle for scenario positions.

    Open --create--> Assigned --confirm--> Confirmed
    Assigned | Confirmed --cancel--> Cancelled (position reopens to Open)

Every transition runs inside one store transaction so the conflict check and
the status write cannot be raced by another writer.
"""

import datetime as dt
import logging
from enum import StrEnum
from typing import assert_never

from pydantic import BaseModel

from strikeplan import store
from strikeplan.errors import ConflictError, InvalidStateError
from strikeplan.models import (
    Actor,
    AssignmentStatus,
    PositionStatus,
    Provider,
    ScenarioAssignment,
    ScenarioPosition,
    ShiftType,
)
from strikeplan.planner import Planner

logger = logging.getLogger(__name__)


class Transition(StrEnum):
    CONFIRM = "confirm"
    CANCEL = "cancel"


def next_status(
    current: AssignmentStatus, transition: Transition
) -> tuple[AssignmentStatus, PositionStatus]:
    """
    Target assignment status and mirrored position status for a transition.
    Raises ``InvalidStateError`` for any move the lifecycle does not allow.
    """
    match transition:
        case Transition.CONFIRM:
            match current:
                case AssignmentStatus.ACTIVE:
                    return AssignmentStatus.CONFIRMED, PositionStatus.CONFIRMED
                case AssignmentStatus.CONFIRMED | AssignmentStatus.CANCELLED:
                    raise InvalidStateError("Can only confirm active assignments")
                case _:
                    assert_never(current)
        case Transition.CANCEL:
            match current:
                case AssignmentStatus.ACTIVE | AssignmentStatus.CONFIRMED:
                    return AssignmentStatus.CANCELLED, PositionStatus.OPEN
                case AssignmentStatus.CANCELLED:
                    raise InvalidStateError("Assignment is already cancelled")
                case _:
                    assert_never(current)
        case _:
            assert_never(transition)


def ensure_no_conflict(
    planner: Planner,
    position: ScenarioPosition,
    provider_id: str,
    *,
    pending: set[tuple[dt.date, ShiftType]] | None = None,
) -> None:
    """
    Raise ``ConflictError`` when the provider already holds the position's
    date and shift in this scenario, or is about to in ``pending``.
    """
    booked = store.booked_slots(planner.db, position.scenario_id, provider_id)
    if pending:
        booked |= pending
    if position.slot in booked:
        raise ConflictError(
            f"Already assigned to {position.shift_type} shift on "
            f"{position.date.isoformat()}"
        )


def book_position(
    planner: Planner,
    position: ScenarioPosition,
    provider: Provider,
    *,
    assigned_by: str,
    notes: str | None = None,
    pending: set[tuple[dt.date, ShiftType]] | None = None,
) -> ScenarioAssignment:
    """
    Bind ``provider`` to an open position. Shared by admin assignment and
    self-service claims; callers hold the store transaction.
    """
    if position.status != PositionStatus.OPEN or not position.is_active:
        raise ConflictError(
            f"Position for {position.date.isoformat()} {position.shift_type} "
            "is no longer available"
        )
    ensure_no_conflict(planner, position, provider.id, pending=pending)

    assignment = ScenarioAssignment(
        id=planner.db.new_id(),
        scenario_position_id=position.id,
        provider_id=provider.id,
        scenario_id=position.scenario_id,
        status=AssignmentStatus.ACTIVE,
        assigned_at=planner.now(),
        assigned_by=assigned_by,
        notes=notes,
    )
    store.save(planner.db, assignment)
    position.status = PositionStatus.ASSIGNED
    store.save(planner.db, position)
    return assignment


def create_assignment(
    planner: Planner,
    actor: Actor,
    position_id: str,
    provider_id: str,
    notes: str | None = None,
) -> ScenarioAssignment:
    db = planner.db
    with db.transaction():
        position = store.require_position(db, position_id)
        provider = store.require_provider(db, provider_id)
        if not provider.is_active:
            raise InvalidStateError("Provider is not active")

        planner.authorizer.require_scope(actor, position.department_id)
        assignment = book_position(
            planner, position, provider, assigned_by=actor.id, notes=notes
        )

    logger.info(
        "assigned provider %s to position %s (%s %s)",
        provider.id,
        position.id,
        position.date.isoformat(),
        position.shift_type,
    )
    planner.audit.record(
        actor.id,
        "ASSIGN",
        "SCENARIO_ASSIGNMENT",
        assignment.id,
        {
            "providerId": provider.id,
            "positionId": position.id,
            "date": position.date.isoformat(),
            "shiftType": position.shift_type.value,
        },
    )
    return assignment


def apply_transition(
    planner: Planner,
    assignment: ScenarioAssignment,
    transition: Transition,
    *,
    cancelled_by: str | None = None,
    reason: str | None = None,
) -> ScenarioPosition:
    """Move an assignment and its position together; callers hold the lock."""
    db = planner.db
    position = store.require_position(db, assignment.scenario_position_id)
    assignment_status, position_status = next_status(assignment.status, transition)

    assignment.status = assignment_status
    if transition == Transition.CANCEL:
        assignment.cancelled_at = planner.now()
        assignment.cancelled_by = cancelled_by
        assignment.cancel_reason = reason
    position.status = position_status

    store.save(db, assignment)
    store.save(db, position)
    return position


def confirm_assignment(
    planner: Planner, actor: Actor, assignment_id: str
) -> ScenarioAssignment:
    db = planner.db
    with db.transaction():
        assignment = store.require_assignment(db, assignment_id)
        next_status(assignment.status, Transition.CONFIRM)
        position = store.require_position(db, assignment.scenario_position_id)
        planner.authorizer.require_scope(actor, position.department_id)
        apply_transition(planner, assignment, Transition.CONFIRM)

    logger.info("confirmed assignment %s", assignment.id)
    planner.audit.record(
        actor.id,
        "UPDATE",
        "SCENARIO_ASSIGNMENT",
        assignment.id,
        {"action": "confirm"},
    )
    return assignment


def cancel_assignment(
    planner: Planner,
    actor: Actor,
    assignment_id: str,
    reason: str | None = None,
) -> ScenarioAssignment:
    db = planner.db
    with db.transaction():
        assignment = store.require_assignment(db, assignment_id)
        next_status(assignment.status, Transition.CANCEL)
        position = store.require_position(db, assignment.scenario_position_id)
        planner.authorizer.require_scope(actor, position.department_id)
        apply_transition(
            planner,
            assignment,
            Transition.CANCEL,
            cancelled_by=actor.id,
            reason=reason,
        )

    logger.info(
        "cancelled assignment %s, position %s reopened", assignment.id, position.id
    )
    planner.audit.record(
        actor.id,
        "CANCEL",
        "SCENARIO_ASSIGNMENT",
        assignment.id,
        {"reason": reason},
    )
    return assignment


class AssignmentView(BaseModel):
    id: str
    scenario_position_id: str
    provider_id: str
    provider_name: str
    status: AssignmentStatus
    date: dt.date | None = None
    shift_type: ShiftType | None = None
    job_code: str | None = None
    service_name: str | None = None
    job_type_name: str | None = None
    notes: str | None = None
    cancel_reason: str | None = None


def list_assignments(
    planner: Planner,
    scenario_id: str,
    *,
    on_date: dt.date | None = None,
    status: AssignmentStatus | None = None,
) -> list[AssignmentView]:
    db = planner.db
    views = []
    for assignment in store.assignments_for_scenario(db, scenario_id):
        if status is not None and assignment.status != status:
            continue
        position = store.find_position(db, assignment.scenario_position_id)
        if on_date is not None and (position is None or position.date != on_date):
            continue
        provider = store.find_provider(db, assignment.provider_id)
        service = store.find_service(db, position.service_id) if position else None
        job_type = store.find_job_type(db, position.job_type_id) if position else None
        views.append(
            AssignmentView(
                id=assignment.id,
                scenario_position_id=assignment.scenario_position_id,
                provider_id=assignment.provider_id,
                provider_name=provider.full_name if provider else "Unknown",
                status=assignment.status,
                date=position.date if position else None,
                shift_type=position.shift_type if position else None,
                job_code=position.job_code if position else None,
                service_name=service.name if service else None,
                job_type_name=job_type.name if job_type else None,
                notes=assignment.notes,
                cancel_reason=assignment.cancel_reason,
            )
        )

    views.sort(
        key=lambda v: (
            v.date.isoformat() if v.date else "",
            v.service_name or "",
            v.shift_type or "",
        )
    )
    return views
