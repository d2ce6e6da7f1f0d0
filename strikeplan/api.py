import datetime as dt
import logging

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from strikeplan import assignments, claims, matching, scenarios
from strikeplan.config import configure_logging, load_env, load_settings
from strikeplan.errors import ErrorKind, StrikePlanError, kind_of
from strikeplan.models import (
    Actor,
    AffectedJobType,
    AssignmentStatus,
    Scenario,
    ScenarioStatus,
    ShiftType,
)
from strikeplan.planner import Planner, build_planner

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.EXPIRED: 410,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.VALIDATION: 422,
}


class CreateScenarioRequest(BaseModel):
    health_system_id: str
    hospital_id: str | None = None
    name: str
    description: str | None = None
    start_date: dt.date
    end_date: dt.date
    affected_job_types: list[AffectedJobType] = Field(default_factory=list)


class UpdateScenarioRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    affected_job_types: list[AffectedJobType] | None = None


class ReasonRequest(BaseModel):
    reason: str | None = None


class IssueTokensRequest(BaseModel):
    provider_ids: list[str]


class CreateAssignmentRequest(BaseModel):
    scenario_position_id: str
    provider_id: str
    notes: str | None = None


class ClaimRequest(BaseModel):
    position_ids: list[str]


def _planner(request: Request) -> Planner:
    return request.app.state.planner


def _actor(request: Request) -> Actor:
    return _planner(request).authorizer.resolve()


def _error_response(kind: ErrorKind, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND[kind],
        content={"detail": message, "kind": kind.value},
    )


async def handle_strikeplan_error(
    request: Request, exc: StrikePlanError
) -> JSONResponse:
    kind = kind_of(exc)
    logger.info(
        "%s %s failed (%s): %s", request.method, request.url.path, kind, exc.message
    )
    return _error_response(kind, exc.message)


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


# --- scenarios ---


@router.get("/scenarios")
async def list_scenarios(
    request: Request,
    health_system_id: str | None = None,
    hospital_id: str | None = None,
    status: ScenarioStatus | None = None,
) -> list[Scenario]:
    _actor(request)
    return scenarios.list_scenarios(
        _planner(request),
        health_system_id=health_system_id,
        hospital_id=hospital_id,
        status=status,
    )


@router.post("/scenarios", status_code=201)
async def create_scenario(body: CreateScenarioRequest, request: Request):
    return scenarios.create_scenario(
        _planner(request),
        _actor(request),
        health_system_id=body.health_system_id,
        hospital_id=body.hospital_id,
        name=body.name,
        description=body.description,
        start_date=body.start_date,
        end_date=body.end_date,
        affected_job_types=body.affected_job_types,
    )


@router.get("/scenarios/{scenario_id}")
async def get_scenario(scenario_id: str, request: Request):
    _actor(request)
    return scenarios.get_scenario_summary(_planner(request), scenario_id)


@router.patch("/scenarios/{scenario_id}")
async def update_scenario(
    scenario_id: str, body: UpdateScenarioRequest, request: Request
) -> dict:
    stats = scenarios.update_scenario(
        _planner(request),
        _actor(request),
        scenario_id,
        name=body.name,
        description=body.description,
        start_date=body.start_date,
        end_date=body.end_date,
        affected_job_types=body.affected_job_types,
    )
    return {
        "scenario_id": scenario_id,
        "regenerated": stats is not None,
        "stats": stats,
    }


@router.delete("/scenarios/{scenario_id}")
async def delete_scenario(scenario_id: str, request: Request) -> dict:
    scenarios.delete_scenario(_planner(request), _actor(request), scenario_id)
    return {"scenario_id": scenario_id, "status": "deleted"}


@router.post("/scenarios/{scenario_id}/activate")
async def activate_scenario(scenario_id: str, request: Request):
    return scenarios.activate_scenario(
        _planner(request), _actor(request), scenario_id
    )


@router.post("/scenarios/{scenario_id}/complete")
async def complete_scenario(scenario_id: str, request: Request):
    return scenarios.complete_scenario(
        _planner(request), _actor(request), scenario_id
    )


@router.post("/scenarios/{scenario_id}/cancel")
async def cancel_scenario(
    scenario_id: str, request: Request, body: ReasonRequest | None = None
):
    return scenarios.cancel_scenario(
        _planner(request),
        _actor(request),
        scenario_id,
        reason=body.reason if body else None,
    )


@router.post("/scenarios/{scenario_id}/regenerate")
async def regenerate_positions(scenario_id: str, request: Request):
    return scenarios.regenerate_positions(
        _planner(request), _actor(request), scenario_id
    )


@router.get("/scenarios/{scenario_id}/calendar")
async def get_calendar(scenario_id: str, request: Request):
    _actor(request)
    return scenarios.get_calendar_view(_planner(request), scenario_id)


@router.get("/scenarios/{scenario_id}/open-positions")
async def list_open_positions(
    scenario_id: str,
    request: Request,
    on_date: dt.date | None = Query(default=None, alias="date"),
    service_id: str | None = None,
    shift_type: ShiftType | None = None,
):
    _actor(request)
    return scenarios.list_open_positions(
        _planner(request),
        scenario_id,
        on_date=on_date,
        service_id=service_id,
        shift_type=shift_type,
    )


@router.get("/scenarios/{scenario_id}/gaps")
async def get_coverage_gaps(scenario_id: str, request: Request):
    _actor(request)
    return matching.get_coverage_gaps(_planner(request), scenario_id)


@router.get("/scenarios/{scenario_id}/assignments")
async def list_assignments(
    scenario_id: str,
    request: Request,
    on_date: dt.date | None = Query(default=None, alias="date"),
    status: AssignmentStatus | None = None,
):
    _actor(request)
    return assignments.list_assignments(
        _planner(request), scenario_id, on_date=on_date, status=status
    )


@router.post("/scenarios/{scenario_id}/claim-tokens")
async def issue_claim_tokens(
    scenario_id: str, body: IssueTokensRequest, request: Request
):
    return claims.generate_claim_tokens(
        _planner(request), _actor(request), scenario_id, body.provider_ids
    )


# --- matching ---


@router.get("/positions/{position_id}/matches")
async def find_matches(position_id: str, request: Request):
    _actor(request)
    return matching.find_matches(_planner(request), position_id)


@router.get("/providers/{provider_id}/workload")
async def get_provider_workload(
    provider_id: str, scenario_id: str, request: Request
):
    _actor(request)
    return matching.get_provider_workload(
        _planner(request), provider_id, scenario_id
    )


# --- assignments ---


@router.post("/assignments", status_code=201)
async def create_assignment(body: CreateAssignmentRequest, request: Request):
    return assignments.create_assignment(
        _planner(request),
        _actor(request),
        body.scenario_position_id,
        body.provider_id,
        body.notes,
    )


@router.post("/assignments/{assignment_id}/confirm")
async def confirm_assignment(assignment_id: str, request: Request):
    return assignments.confirm_assignment(
        _planner(request), _actor(request), assignment_id
    )


@router.post("/assignments/{assignment_id}/cancel")
async def cancel_assignment(
    assignment_id: str, request: Request, body: ReasonRequest | None = None
):
    return assignments.cancel_assignment(
        _planner(request),
        _actor(request),
        assignment_id,
        reason=body.reason if body else None,
    )


# --- claim portal (token is the only credential) ---


@router.get("/claim/{token}")
async def get_claim_data(token: str, request: Request):
    result = claims.get_claim_data(_planner(request), token)
    if result.error is not None:
        return _error_response(
            result.error_kind or ErrorKind.UNAUTHORIZED, result.error
        )
    return result.data


@router.get("/claim/{token}/assignments")
async def get_my_assignments(token: str, request: Request):
    return claims.get_my_assignments(_planner(request), token)


@router.post("/claim/{token}/claims")
async def claim_positions(token: str, body: ClaimRequest, request: Request):
    return claims.claim_positions(_planner(request), token, body.position_ids)


@router.delete("/claim/{token}/assignments/{assignment_id}")
async def unclaim_position(token: str, assignment_id: str, request: Request):
    return claims.unclaim_position(_planner(request), token, assignment_id)


def create_app(planner: Planner | None = None) -> FastAPI:
    if planner is None:
        load_env()
        settings = load_settings()
        configure_logging(settings.log_level)
        planner = build_planner(settings=settings)

    app = FastAPI()
    app.state.planner = planner
    app.add_exception_handler(StrikePlanError, handle_strikeplan_error)
    app.include_router(router)
    return app
