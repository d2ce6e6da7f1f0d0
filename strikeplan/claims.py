"""
Self-service claim workflow.

An admin mints one claim token per (scenario, provider). The token alone
authorises the provider to list open positions, claim them and cancel their
own claims; every call re-validates the token, the scenario and the provider.
"""

import datetime as dt
import logging
import secrets
from collections import defaultdict

from pydantic import BaseModel, Field, computed_field

from strikeplan import store
from strikeplan.assignments import Transition, apply_transition, book_position
from strikeplan.config import SELF_CANCEL_REASON, SELF_CLAIM_NOTE
from strikeplan.errors import (
    ClaimLinkError,
    ErrorKind,
    ForbiddenError,
    NotFoundError,
    StrikePlanError,
    kind_of,
)
from strikeplan.matching import can_work_at_hospital, skill_coverage, visa_restricted
from strikeplan.models import (
    Actor,
    AssignmentStatus,
    ClaimToken,
    PositionStatus,
    Provider,
    Scenario,
    ScenarioPosition,
    ShiftType,
    SkillMatch,
)
from strikeplan.planner import Planner

logger = logging.getLogger(__name__)

INVALID_LINK = "Invalid or expired link"
EXPIRED_LINK = "This link has expired"
SCENARIO_INACTIVE = "Scenario is no longer active"
PROVIDER_NOT_FOUND = "Provider not found"


def _redact(token: str) -> str:
    return f"{token[:8]}..."


def token_expiry(planner: Planner, end_date: dt.date) -> dt.datetime:
    """The last millisecond of the day after the scenario ends, local time."""
    day = end_date + dt.timedelta(days=1)
    return dt.datetime.combine(
        day, dt.time(23, 59, 59, 999000), tzinfo=planner.settings.timezone
    )


# --- token issuance (admin) ---


class IssuedToken(BaseModel):
    provider_id: str
    token: str
    provider_name: str
    provider_email: str | None = None
    reused: bool = False


class ItemError(BaseModel):
    item_id: str
    kind: ErrorKind
    message: str


class TokenBatch(BaseModel):
    scenario_id: str
    scenario_name: str
    tokens: list[IssuedToken] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)


def generate_claim_tokens(
    planner: Planner, actor: Actor, scenario_id: str, provider_ids: list[str]
) -> TokenBatch:
    """
    Issue (or reuse) a claim token for each provider. A reused token that
    has already expired gets its expiry pushed to the scenario's current
    end. Providers that are missing or inactive are reported per item; the
    rest still get tokens.
    """
    db = planner.db
    with db.transaction():
        scenario = store.require_scenario(db, scenario_id)
        planner.authorizer.require_scope(actor, scenario.health_system_id)
        expires_at = token_expiry(planner, scenario.end_date)
        existing = {t.provider_id: t for t in store.tokens_for_scenario(db, scenario_id)}

        batch = TokenBatch(scenario_id=scenario.id, scenario_name=scenario.name)
        for provider_id in provider_ids:
            provider = store.find_provider(db, provider_id)
            if provider is None or not provider.is_active:
                batch.errors.append(
                    ItemError(
                        item_id=provider_id,
                        kind=ErrorKind.NOT_FOUND,
                        message=PROVIDER_NOT_FOUND,
                    )
                )
                continue

            token = existing.get(provider_id)
            reused = token is not None
            if token is None:
                token = ClaimToken(
                    id=db.new_id(),
                    scenario_id=scenario.id,
                    provider_id=provider_id,
                    token=secrets.token_urlsafe(32),
                    expires_at=expires_at,
                    created_by=actor.id,
                    created_at=planner.now(),
                )
                store.save(db, token)
                existing[provider_id] = token
            elif planner.now() > token.expires_at:
                token.expires_at = expires_at
                store.save(db, token)
                logger.info(
                    "extended expired claim token for provider %s in scenario %s",
                    provider_id,
                    scenario.id,
                )

            batch.tokens.append(
                IssuedToken(
                    provider_id=provider_id,
                    token=token.token,
                    provider_name=provider.full_name,
                    provider_email=provider.email,
                    reused=reused,
                )
            )

    logger.info(
        "issued %d claim tokens for scenario %s (%d skipped)",
        len(batch.tokens),
        scenario.id,
        len(batch.errors),
    )
    planner.audit.record(
        actor.id,
        "CREATE",
        "CLAIM_TOKEN",
        scenario.id,
        {"providerCount": len(batch.tokens), "scenarioName": scenario.name},
    )
    return batch


# --- token validation ---


class ClaimSession(BaseModel):
    token: ClaimToken
    scenario: Scenario
    provider: Provider


def open_session(planner: Planner, token: str) -> ClaimSession:
    """
    Resolve a token to its scenario and provider, or raise ``ClaimLinkError``
    when the token is unknown or expired, the scenario is inactive, or the
    provider is gone.
    """
    db = planner.db
    claim_token = store.find_claim_token(db, token)
    if claim_token is None:
        logger.warning("rejected unknown claim token %s", _redact(token))
        raise ClaimLinkError(INVALID_LINK)

    if planner.now() > claim_token.expires_at:
        logger.warning("rejected expired claim token %s", _redact(token))
        raise ClaimLinkError(EXPIRED_LINK, expired=True)

    scenario = store.find_scenario(db, claim_token.scenario_id)
    if scenario is None or not scenario.is_active:
        raise ClaimLinkError(SCENARIO_INACTIVE)

    provider = store.find_provider(db, claim_token.provider_id)
    if provider is None or not provider.is_active:
        raise ClaimLinkError(PROVIDER_NOT_FOUND)

    return ClaimSession(token=claim_token, scenario=scenario, provider=provider)


def offered_to(
    planner: Planner, provider: Provider, position: ScenarioPosition
) -> bool:
    """Job type, hospital access and visa rules for self-service claims."""
    if position.job_type_id != provider.job_type_id:
        return False
    if not can_work_at_hospital(provider, position.hospital_id):
        return False
    job_type = store.find_job_type(planner.db, provider.job_type_id)
    return not visa_restricted(
        provider,
        job_type.code if job_type else None,
        position.hospital_id,
        planner.settings.fellow_job_type_code,
    )


def ensure_claimable(
    planner: Planner, session: ClaimSession, position: ScenarioPosition
) -> None:
    if not offered_to(planner, session.provider, position):
        raise ForbiddenError("Position is not available to you")


# --- available positions ---


class AvailablePosition(BaseModel):
    position_id: str
    date: dt.date
    shift_type: ShiftType
    shift_start: str
    shift_end: str
    service_name: str
    service_code: str
    hospital_name: str
    department_name: str
    skill_match: SkillMatch
    is_home_hospital: bool


class ClaimData(BaseModel):
    provider_name: str
    provider_job_type: str
    scenario_name: str
    scenario_start_date: dt.date
    scenario_end_date: dt.date
    available_positions: list[AvailablePosition]
    positions_by_date: dict[dt.date, list[AvailablePosition]]
    total_available: int
    already_assigned: int


class ClaimDataResult(BaseModel):
    error: str | None = None
    error_kind: ErrorKind | None = None
    data: ClaimData | None = None


def _shift_order(shift_type: ShiftType) -> int:
    return 0 if shift_type == ShiftType.AM else 1


def get_claim_data(planner: Planner, token: str) -> ClaimDataResult:
    """
    Positions the token's provider may claim: open, same job type, reachable
    hospital, no clash with their existing bookings. Token problems come back
    as an error message, never as an exception.
    """
    try:
        session = open_session(planner, token)
    except ClaimLinkError as exc:
        return ClaimDataResult(error=exc.message, error_kind=kind_of(exc))

    db = planner.db
    provider = session.provider
    scenario = session.scenario
    job_type = store.find_job_type(db, provider.job_type_id)
    booked = store.booked_slots(db, scenario.id, provider.id)

    available = []
    for position in store.positions_for_scenario(db, scenario.id):
        if position.status != PositionStatus.OPEN or not position.is_active:
            continue
        if not offered_to(planner, provider, position):
            continue
        if position.slot in booked:
            continue

        service = store.find_service(db, position.service_id)
        hospital = store.find_hospital(db, position.hospital_id)
        department = store.find_department(db, position.department_id)
        config = store.find_service_job_type(db, position.service_job_type_id)
        tier = SkillMatch.PERFECT
        if config is not None:
            tier = skill_coverage(config.required_skill_ids, provider.skill_ids).tier

        available.append(
            AvailablePosition(
                position_id=position.id,
                date=position.date,
                shift_type=position.shift_type,
                shift_start=position.shift_start,
                shift_end=position.shift_end,
                service_name=service.name if service else "Unknown Service",
                service_code=service.short_code if service else "",
                hospital_name=hospital.name if hospital else "Unknown Hospital",
                department_name=(
                    department.name if department else "Unknown Department"
                ),
                skill_match=tier,
                is_home_hospital=provider.hospital_id == position.hospital_id,
            )
        )

    available.sort(key=lambda p: (p.date, _shift_order(p.shift_type)))
    by_date: dict[dt.date, list[AvailablePosition]] = defaultdict(list)
    for item in available:
        by_date[item.date].append(item)

    return ClaimDataResult(
        data=ClaimData(
            provider_name=provider.full_name,
            provider_job_type=job_type.name if job_type else "Unknown",
            scenario_name=scenario.name,
            scenario_start_date=scenario.start_date,
            scenario_end_date=scenario.end_date,
            available_positions=available,
            positions_by_date=dict(by_date),
            total_available=len(available),
            already_assigned=len(store.live_assignments(db, scenario.id, provider.id)),
        )
    )


class MyAssignment(BaseModel):
    assignment_id: str
    date: dt.date | None = None
    shift_type: ShiftType | None = None
    shift_start: str = ""
    shift_end: str = ""
    service_name: str = ""
    hospital_name: str = ""
    status: AssignmentStatus
    assigned_at: dt.datetime


def get_my_assignments(planner: Planner, token: str) -> list[MyAssignment]:
    session = open_session(planner, token)
    db = planner.db
    results = []
    for assignment in store.live_assignments(
        db, session.scenario.id, session.provider.id
    ):
        position = store.find_position(db, assignment.scenario_position_id)
        service = store.find_service(db, position.service_id) if position else None
        hospital = store.find_hospital(db, position.hospital_id) if position else None
        results.append(
            MyAssignment(
                assignment_id=assignment.id,
                date=position.date if position else None,
                shift_type=position.shift_type if position else None,
                shift_start=position.shift_start if position else "",
                shift_end=position.shift_end if position else "",
                service_name=service.name if service else "",
                hospital_name=hospital.name if hospital else "",
                status=assignment.status,
                assigned_at=assignment.assigned_at,
            )
        )
    results.sort(key=lambda a: a.date or dt.date.min)
    return results


# --- claim / unclaim ---


class ClaimedPosition(BaseModel):
    position_id: str
    assignment_id: str


class ClaimOutcome(BaseModel):
    claimed: list[ClaimedPosition] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)
    message: str = ""

    @computed_field
    @property
    def claimed_count(self) -> int:
        return len(self.claimed)


def claim_positions(
    planner: Planner, token: str, position_ids: list[str]
) -> ClaimOutcome:
    """
    Claim a batch of positions for the token's provider. Claims are
    auto-approved (Active) and attributed to the admin who issued the token.
    Each position succeeds or fails on its own; a conflict with an earlier
    position in the same batch counts as a conflict.
    """
    db = planner.db
    outcome = ClaimOutcome()
    with db.transaction():
        session = open_session(planner, token)
        pending: set[tuple[dt.date, ShiftType]] = set()

        for position_id in position_ids:
            try:
                position = store.require_position(db, position_id)
                if position.scenario_id != session.scenario.id:
                    raise NotFoundError("Position does not belong to this scenario")
                ensure_claimable(planner, session, position)
                assignment = book_position(
                    planner,
                    position,
                    session.provider,
                    assigned_by=session.token.created_by,
                    notes=SELF_CLAIM_NOTE,
                    pending=pending,
                )
            except StrikePlanError as exc:
                logger.warning(
                    "claim of position %s by provider %s failed: %s",
                    position_id,
                    session.provider.id,
                    exc.message,
                )
                outcome.errors.append(
                    ItemError(item_id=position_id, kind=kind_of(exc), message=exc.message)
                )
                continue

            pending.add(position.slot)
            outcome.claimed.append(
                ClaimedPosition(position_id=position.id, assignment_id=assignment.id)
            )

    count = outcome.claimed_count
    outcome.message = (
        f"Successfully claimed {count} shift{'s' if count > 1 else ''}"
        if count
        else "No shifts were claimed"
    )
    logger.info(
        "provider %s claimed %d of %d positions in scenario %s",
        session.provider.id,
        count,
        len(position_ids),
        session.scenario.id,
    )
    planner.audit.record(
        session.token.created_by,
        "SELF_CLAIM",
        "SCENARIO_ASSIGNMENT",
        session.scenario.id,
        {
            "providerId": session.provider.id,
            "providerName": session.provider.full_name,
            "claimedCount": count,
            "positionIds": [c.position_id for c in outcome.claimed],
        },
    )
    return outcome


class UnclaimResult(BaseModel):
    success: bool
    message: str


def unclaim_position(
    planner: Planner, token: str, assignment_id: str
) -> UnclaimResult:
    db = planner.db
    with db.transaction():
        session = open_session(planner, token)
        assignment = store.require_assignment(db, assignment_id)
        if assignment.provider_id != session.provider.id:
            raise ClaimLinkError("You can only cancel your own assignments")
        if assignment.scenario_id != session.scenario.id:
            raise ClaimLinkError("Assignment does not belong to this scenario")

        apply_transition(
            planner, assignment, Transition.CANCEL, reason=SELF_CANCEL_REASON
        )

    logger.info(
        "provider %s cancelled assignment %s", session.provider.id, assignment.id
    )
    planner.audit.record(
        session.token.created_by,
        "SELF_CANCEL",
        "SCENARIO_ASSIGNMENT",
        assignment.id,
        {"providerId": session.provider.id, "reason": SELF_CANCEL_REASON},
    )
    return UnclaimResult(success=True, message="Shift cancelled successfully")
