import datetime as dt

import pytest

from strikeplan import store
from strikeplan.models import (
    Actor,
    ActorRole,
    AffectedJobType,
    Department,
    Hospital,
    JobType,
    Provider,
    Service,
    ServiceJobTypeConfig,
    Skill,
)
from strikeplan.planner import Planner, build_planner
from strikeplan.scenarios import create_scenario
from strikeplan.store import Database

HEALTH_SYSTEM = "hs-1"
ADMIN = Actor(id="admin-1", role=ActorRole.SUPER_ADMIN)

# Monday and Tuesday
WEEK_START = dt.date(2025, 6, 2)
WEEK_END = dt.date(2025, 6, 3)


def _p(msg: str) -> None:
    # pytest captures stdout unless you run with -s
    print(msg, flush=True)


def _banner(name: str) -> None:
    _p("\n" + "=" * 88)
    _p(f"test: {name}")
    _p("=" * 88)


def _dump_positions(planner: Planner, scenario_id: str) -> None:
    positions = store.positions_for_scenario(planner.db, scenario_id)
    _p(f"db positions for scenario {scenario_id}:")
    for p in sorted(positions, key=lambda x: x.job_code):
        _p(f"  - {p.job_code} | status={p.status} | active={p.is_active}")


def seed_reference_data(db: Database) -> None:
    """
    Two hospitals in one health system:

    - MAIN / Emergency Dept / "ED": days only, runs weekends, MD x4, FEL x2
    - EAST / Cardiology / "CARD": days and nights, weekdays only, MD x2
      (service default), FEL x1
    """
    for record in (
        Hospital(
            id="hosp-main",
            health_system_id=HEALTH_SYSTEM,
            name="Main Hospital",
            short_code="MAIN",
        ),
        Hospital(
            id="hosp-east",
            health_system_id=HEALTH_SYSTEM,
            name="East Hospital",
            short_code="EAST",
        ),
        Department(
            id="dept-ed",
            hospital_id="hosp-main",
            health_system_id=HEALTH_SYSTEM,
            name="Emergency Dept",
        ),
        Department(
            id="dept-card",
            hospital_id="hosp-east",
            health_system_id=HEALTH_SYSTEM,
            name="Cardiology",
        ),
        JobType(id="jt-md", health_system_id=HEALTH_SYSTEM, name="Physician", code="MD"),
        JobType(id="jt-fel", health_system_id=HEALTH_SYSTEM, name="Fellow", code="FEL"),
        JobType(id="jt-rn", health_system_id=HEALTH_SYSTEM, name="Nurse", code="RN"),
        Skill(id="sk-acls", name="ACLS", category="certification"),
        Skill(id="sk-airway", name="Airway", category="procedure"),
        Skill(id="sk-echo", name="Echo", category="procedure"),
        Service(
            id="svc-ed",
            department_id="dept-ed",
            hospital_id="hosp-main",
            health_system_id=HEALTH_SYSTEM,
            name="Emergency",
            short_code="ED",
            operates_nights=False,
        ),
        ServiceJobTypeConfig(
            id="cfg-ed-md",
            service_id="svc-ed",
            job_type_id="jt-md",
            headcount=4,
            required_skill_ids=["sk-acls", "sk-airway"],
        ),
        ServiceJobTypeConfig(
            id="cfg-ed-fel", service_id="svc-ed", job_type_id="jt-fel", headcount=2
        ),
        Service(
            id="svc-card",
            department_id="dept-card",
            hospital_id="hosp-east",
            health_system_id=HEALTH_SYSTEM,
            name="Cardiology",
            short_code="CARD",
            operates_weekends=False,
            default_headcount=2,
        ),
        ServiceJobTypeConfig(
            id="cfg-card-md", service_id="svc-card", job_type_id="jt-md"
        ),
        ServiceJobTypeConfig(
            id="cfg-card-fel",
            service_id="svc-card",
            job_type_id="jt-fel",
            headcount=1,
        ),
    ):
        store.save(db, record)


def make_provider(provider_id: str, **overrides) -> Provider:
    fields = {
        "id": provider_id,
        "health_system_id": HEALTH_SYSTEM,
        "hospital_id": "hosp-main",
        "department_id": "dept-ed",
        "job_type_id": "jt-md",
        "first_name": provider_id.split("-")[-1].title(),
        "last_name": "Test",
        "email": f"{provider_id}@example.org",
    }
    fields.update(overrides)
    return Provider(**fields)


def seed_providers(db: Database) -> None:
    for provider in (
        make_provider("prov-alice", skill_ids={"sk-acls", "sk-airway"}),
        make_provider("prov-bob", skill_ids={"sk-acls"}),
        make_provider(
            "prov-carol",
            hospital_id="hosp-east",
            department_id="dept-card",
            skill_ids={"sk-acls", "sk-airway"},
            hospital_access_ids={"hosp-main"},
        ),
        make_provider(
            "prov-dan", hospital_id="hosp-east", department_id="dept-card"
        ),
        make_provider(
            "prov-erin",
            job_type_id="jt-fel",
            hospital_id="hosp-east",
            department_id="dept-card",
            has_visa=True,
            hospital_access_ids={"hosp-main"},
        ),
        make_provider(
            "prov-finn",
            job_type_id="jt-fel",
            hospital_id="hosp-east",
            department_id="dept-card",
            hospital_access_ids={"hosp-main"},
        ),
    ):
        store.save(db, provider)


@pytest.fixture
def planner() -> Planner:
    planner = build_planner(actor=ADMIN)
    seed_reference_data(planner.db)
    seed_providers(planner.db)
    return planner


def new_scenario(
    planner: Planner,
    *,
    start: dt.date = WEEK_START,
    end: dt.date = WEEK_END,
    affected: list[AffectedJobType] | None = None,
    hospital_id: str | None = None,
    name: str = "June strike",
) -> str:
    created = create_scenario(
        planner,
        ADMIN,
        health_system_id=HEALTH_SYSTEM,
        hospital_id=hospital_id,
        name=name,
        start_date=start,
        end_date=end,
        affected_job_types=(
            affected
            if affected is not None
            else [AffectedJobType(job_type_id="jt-md", reduction_percent=50)]
        ),
    )
    return created.scenario_id


@pytest.fixture
def scenario_id(planner: Planner) -> str:
    """
    MD at 50% over Mon-Tue: ED gives 2 AM per day, CARD gives 1 AM and 1 PM
    per day, 8 positions in total.
    """
    return new_scenario(planner)
