import datetime as dt
import threading

import pytest

from strikeplan import store
from strikeplan.assignments import (
    Transition,
    cancel_assignment,
    confirm_assignment,
    create_assignment,
    list_assignments,
    next_status,
)
from strikeplan.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    StrikePlanError,
)
from strikeplan.models import (
    Actor,
    ActorRole,
    AssignmentStatus,
    PositionStatus,
    ScenarioPosition,
    ShiftType,
)
from strikeplan.planner import Planner
from strikeplan.scenarios import (
    activate_scenario,
    cancel_scenario,
    complete_scenario,
    delete_scenario,
    get_calendar_view,
    get_scenario_summary,
    list_open_positions,
)
from tests.conftest import ADMIN, _banner, _p, make_provider

MONDAY = dt.date(2025, 6, 2)


def _ed_positions(planner: Planner, scenario_id: str, day: dt.date = MONDAY):
    return sorted(
        (
            p
            for p in store.positions_for_scenario(planner.db, scenario_id)
            if p.service_id == "svc-ed" and p.date == day
        ),
        key=lambda p: p.position_number,
    )


def _status(planner: Planner, position: ScenarioPosition) -> PositionStatus:
    return store.require_position(planner.db, position.id).status


@pytest.mark.parametrize(
    "current, transition, expected",
    [
        (
            AssignmentStatus.ACTIVE,
            Transition.CONFIRM,
            (AssignmentStatus.CONFIRMED, PositionStatus.CONFIRMED),
        ),
        (
            AssignmentStatus.ACTIVE,
            Transition.CANCEL,
            (AssignmentStatus.CANCELLED, PositionStatus.OPEN),
        ),
        (
            AssignmentStatus.CONFIRMED,
            Transition.CANCEL,
            (AssignmentStatus.CANCELLED, PositionStatus.OPEN),
        ),
    ],
)
def test_allowed_transitions(current, transition, expected) -> None:
    assert next_status(current, transition) == expected


@pytest.mark.parametrize(
    "current, transition",
    [
        (AssignmentStatus.CONFIRMED, Transition.CONFIRM),
        (AssignmentStatus.CANCELLED, Transition.CONFIRM),
        (AssignmentStatus.CANCELLED, Transition.CANCEL),
    ],
)
def test_rejected_transitions(current, transition) -> None:
    with pytest.raises(InvalidStateError):
        next_status(current, transition)


def test_assignment_lifecycle(planner: Planner, scenario_id: str) -> None:
    _banner("assign -> confirm -> cancel reopens the position")
    position = _ed_positions(planner, scenario_id)[0]

    assignment = create_assignment(
        planner, ADMIN, position.id, "prov-alice", notes="covering"
    )
    assert assignment.status == AssignmentStatus.ACTIVE
    assert assignment.assigned_by == ADMIN.id
    assert _status(planner, position) == PositionStatus.ASSIGNED

    confirm_assignment(planner, ADMIN, assignment.id)
    assert _status(planner, position) == PositionStatus.CONFIRMED

    with pytest.raises(InvalidStateError, match="Can only confirm active"):
        confirm_assignment(planner, ADMIN, assignment.id)

    cancelled = cancel_assignment(planner, ADMIN, assignment.id, reason="sick")
    assert cancelled.status == AssignmentStatus.CANCELLED
    assert cancelled.cancelled_by == ADMIN.id
    assert cancelled.cancel_reason == "sick"
    assert cancelled.cancelled_at is not None
    assert _status(planner, position) == PositionStatus.OPEN

    with pytest.raises(InvalidStateError, match="already cancelled"):
        cancel_assignment(planner, ADMIN, assignment.id)

    actions = [r.action for r in planner.audit.for_resource("SCENARIO_ASSIGNMENT")]
    assert actions == ["ASSIGN", "UPDATE", "CANCEL"]


def test_cancelled_position_can_be_reassigned(
    planner: Planner, scenario_id: str
) -> None:
    position = _ed_positions(planner, scenario_id)[0]
    first = create_assignment(planner, ADMIN, position.id, "prov-alice")
    cancel_assignment(planner, ADMIN, first.id)

    second = create_assignment(planner, ADMIN, position.id, "prov-alice")
    assert second.id != first.id
    assert _status(planner, position) == PositionStatus.ASSIGNED


def test_double_booking_same_slot_is_a_conflict(
    planner: Planner, scenario_id: str
) -> None:
    first, second = _ed_positions(planner, scenario_id)
    create_assignment(planner, ADMIN, first.id, "prov-alice")

    with pytest.raises(ConflictError, match="Already assigned to AM shift on 2025-06-02"):
        create_assignment(planner, ADMIN, second.id, "prov-alice")
    assert _status(planner, second) == PositionStatus.OPEN


def test_assigning_a_filled_position_is_a_conflict(
    planner: Planner, scenario_id: str
) -> None:
    position = _ed_positions(planner, scenario_id)[0]
    create_assignment(planner, ADMIN, position.id, "prov-alice")

    with pytest.raises(ConflictError):
        create_assignment(planner, ADMIN, position.id, "prov-bob")


def test_missing_or_inactive_records(planner: Planner, scenario_id: str) -> None:
    position = _ed_positions(planner, scenario_id)[0]
    store.save(planner.db, make_provider("prov-gone", is_active=False))

    with pytest.raises(NotFoundError):
        create_assignment(planner, ADMIN, "nope", "prov-alice")
    with pytest.raises(NotFoundError):
        create_assignment(planner, ADMIN, position.id, "nope")
    with pytest.raises(InvalidStateError):
        create_assignment(planner, ADMIN, position.id, "prov-gone")
    with pytest.raises(NotFoundError):
        confirm_assignment(planner, ADMIN, "nope")


def test_department_admin_scope(planner: Planner, scenario_id: str) -> None:
    ed_admin = Actor(
        id="ed-admin", role=ActorRole.DEPARTMENTAL_ADMIN, department_id="dept-ed"
    )
    east_admin = Actor(
        id="east-admin", role=ActorRole.HOSPITAL_ADMIN, hospital_id="hosp-east"
    )
    position = _ed_positions(planner, scenario_id)[0]

    with pytest.raises(ForbiddenError):
        create_assignment(planner, east_admin, position.id, "prov-alice")
    assignment = create_assignment(planner, ed_admin, position.id, "prov-alice")
    assert assignment.assigned_by == "ed-admin"


def test_concurrent_creates_keep_one_booking_per_slot(
    planner: Planner, scenario_id: str
) -> None:
    _banner("racing admins cannot double-book a provider")
    positions = _ed_positions(planner, scenario_id)
    barrier = threading.Barrier(len(positions) * 4)
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt(position_id: str) -> None:
        barrier.wait()
        try:
            create_assignment(planner, ADMIN, position_id, "prov-alice")
            result = "ok"
        except StrikePlanError as exc:
            result = exc.kind.value
        with lock:
            outcomes.append(result)

    threads = [
        threading.Thread(target=attempt, args=(p.id,))
        for p in positions
        for _ in range(4)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    _p(f"outcomes: {sorted(outcomes)}")
    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == len(threads) - 1

    live = store.live_assignments(planner.db, scenario_id, "prov-alice")
    assert len(live) == 1
    statuses = sorted(_status(planner, p) for p in positions)
    assert statuses == sorted([PositionStatus.ASSIGNED, PositionStatus.OPEN])


def test_list_assignments_filters(planner: Planner, scenario_id: str) -> None:
    monday = _ed_positions(planner, scenario_id)[0]
    tuesday = _ed_positions(planner, scenario_id, dt.date(2025, 6, 3))[0]
    a1 = create_assignment(planner, ADMIN, monday.id, "prov-alice")
    create_assignment(planner, ADMIN, tuesday.id, "prov-bob")
    confirm_assignment(planner, ADMIN, a1.id)

    views = list_assignments(planner, scenario_id)
    assert [v.provider_id for v in views] == ["prov-alice", "prov-bob"]
    assert views[0].provider_name == "Alice Test"
    assert views[0].service_name == "Emergency"

    confirmed = list_assignments(
        planner, scenario_id, status=AssignmentStatus.CONFIRMED
    )
    assert [v.id for v in confirmed] == [a1.id]
    on_tuesday = list_assignments(planner, scenario_id, on_date=tuesday.date)
    assert [v.provider_id for v in on_tuesday] == ["prov-bob"]


def test_summary_and_calendar_coverage(planner: Planner, scenario_id: str) -> None:
    first, second = _ed_positions(planner, scenario_id)
    create_assignment(planner, ADMIN, first.id, "prov-alice")
    create_assignment(planner, ADMIN, second.id, "prov-bob")

    summary = get_scenario_summary(planner, scenario_id)
    assert summary.total_positions == 8
    assert summary.filled_positions == 2
    assert summary.open_positions == 6
    assert summary.coverage_percent == 25
    assert summary.total_days == 2
    monday = summary.coverage_by_date[0]
    assert (monday.date, monday.filled, monday.total) == (MONDAY, 2, 4)

    calendar = get_calendar_view(planner, scenario_id)
    assert [row.service_code for row in calendar.grid] == ["CARD", "ED"]
    ed_monday = calendar.grid[1].dates[0]
    assert ed_monday.am.coverage_percent == 100
    # ED runs no nights; an empty cell counts as covered
    assert ed_monday.pm.total == 0
    assert ed_monday.pm.coverage_percent == 100
    card_monday = calendar.grid[0].dates[0]
    assert card_monday.pm.coverage_percent == 0

    open_pm = list_open_positions(planner, scenario_id, shift_type=ShiftType.PM)
    assert {p.service_code for p in open_pm} == {"CARD"}
    assert len(list_open_positions(planner, scenario_id, on_date=MONDAY)) == 2


def test_scenario_status_lifecycle(planner: Planner, scenario_id: str) -> None:
    with pytest.raises(InvalidStateError):
        complete_scenario(planner, ADMIN, scenario_id)

    assert activate_scenario(planner, ADMIN, scenario_id).status == "Active"
    with pytest.raises(InvalidStateError):
        activate_scenario(planner, ADMIN, scenario_id)
    with pytest.raises(InvalidStateError):
        delete_scenario(planner, ADMIN, scenario_id)

    assert complete_scenario(planner, ADMIN, scenario_id).status == "Completed"
    with pytest.raises(InvalidStateError):
        cancel_scenario(planner, ADMIN, scenario_id, reason="settled")


def test_cancel_marks_scenario_inactive(planner: Planner, scenario_id: str) -> None:
    scenario = cancel_scenario(planner, ADMIN, scenario_id, reason="settled")
    assert scenario.status == "Cancelled"
    assert not scenario.is_active
    assert planner.audit.records[-1].changes["reason"] == "settled"


def test_delete_draft_scenario(planner: Planner, scenario_id: str) -> None:
    position = _ed_positions(planner, scenario_id)[0]
    assignment = create_assignment(planner, ADMIN, position.id, "prov-alice")

    with pytest.raises(InvalidStateError, match="existing assignments"):
        delete_scenario(planner, ADMIN, scenario_id)

    cancel_assignment(planner, ADMIN, assignment.id)
    delete_scenario(planner, ADMIN, scenario_id)

    assert store.find_scenario(planner.db, scenario_id) is None
    assert store.positions_for_scenario(planner.db, scenario_id) == []
    assert store.assignments_for_scenario(planner.db, scenario_id) == []
