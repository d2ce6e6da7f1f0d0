"""
Pure staffing helpers used by position generation: the headcount reduction
policy, date range expansion, job codes and the shift configuration resolver.
"""

import math
import re
from dataclasses import dataclass
from datetime import date, timedelta
from fractions import Fraction
from typing import TypeVar

from strikeplan.errors import ValidationFailedError
from strikeplan.models import Service, ServiceJobTypeConfig, ShiftType

MIN_SAFE_HEADCOUNT = 1


def calculate_scenario_headcount(
    original_headcount: int, reduction_percent: float
) -> int:
    """
    Reduced per-shift headcount for a job type during a strike.

    A job type with no reduction keeps its headcount. Any reduction rounds up
    and never drops below ``MIN_SAFE_HEADCOUNT``.
    """
    if original_headcount < 0:
        raise ValidationFailedError("Headcount must not be negative")
    validate_reduction_percent(reduction_percent)

    if reduction_percent == 0:
        return original_headcount

    remaining = Fraction(100) - Fraction(reduction_percent)
    reduced = Fraction(original_headcount) * remaining / 100
    return max(MIN_SAFE_HEADCOUNT, math.ceil(reduced))


def validate_reduction_percent(reduction_percent: float) -> None:
    if not 0 <= reduction_percent <= 100:
        raise ValidationFailedError(
            "Reduction percent must be between 0 and 100"
        )


def date_range(start: date, end: date) -> list[date]:
    """Every calendar day from ``start`` to ``end`` inclusive."""
    if start > end:
        raise ValidationFailedError(
            "Start date must be before or equal to end date"
        )
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def generate_job_code(
    department_name: str | None,
    hospital_code: str | None,
    service_code: str,
    job_type_code: str,
    day: date,
    shift_type: ShiftType,
    position_number: int,
) -> str:
    dept_code = re.sub(r"[^a-zA-Z]", "", department_name or "")[:6] or "DEPT"
    parts = [
        dept_code,
        hospital_code or "HOSP",
        service_code,
        job_type_code,
        day.isoformat(),
        shift_type.value,
        str(position_number),
    ]
    return "_".join(parts)


@dataclass(frozen=True)
class ResolvedShiftConfig:
    day_shift_start: str
    day_shift_end: str
    night_shift_start: str
    night_shift_end: str
    operates_days: bool
    operates_nights: bool
    operates_weekends: bool
    weekday_am_headcount: int
    weekday_pm_headcount: int
    weekend_am_headcount: int
    weekend_pm_headcount: int

    def operates(self, shift_type: ShiftType, *, weekend: bool) -> bool:
        if weekend and not self.operates_weekends:
            return False
        match shift_type:
            case ShiftType.AM:
                return self.operates_days
            case ShiftType.PM:
                return self.operates_nights

    def headcount(self, shift_type: ShiftType, *, weekend: bool) -> int:
        match shift_type, weekend:
            case ShiftType.AM, False:
                return self.weekday_am_headcount
            case ShiftType.PM, False:
                return self.weekday_pm_headcount
            case ShiftType.AM, True:
                return self.weekend_am_headcount
            case ShiftType.PM, True:
                return self.weekend_pm_headcount
        raise ValueError(f"unknown shift type {shift_type!r}")

    def window(self, shift_type: ShiftType) -> tuple[str, str]:
        if shift_type == ShiftType.AM:
            return self.day_shift_start, self.day_shift_end
        return self.night_shift_start, self.night_shift_end


T = TypeVar("T")


def _first_set(*values: T | None) -> T:
    for value in values:
        if value is not None:
            return value
    raise ValueError("no value to fall back to")


def resolve_shift_config(
    config: ServiceJobTypeConfig, service: Service
) -> ResolvedShiftConfig:
    """
    Apply the single fallback rule: a job-type setting wins, otherwise the
    service default. Per-shift headcounts fall back to the config-wide
    headcount and then to the service default headcount.
    """

    def headcount(specific: int | None) -> int:
        return _first_set(specific, config.headcount, service.default_headcount)

    return ResolvedShiftConfig(
        day_shift_start=_first_set(config.day_shift_start, service.day_shift_start),
        day_shift_end=_first_set(config.day_shift_end, service.day_shift_end),
        night_shift_start=_first_set(
            config.night_shift_start, service.night_shift_start
        ),
        night_shift_end=_first_set(config.night_shift_end, service.night_shift_end),
        operates_days=_first_set(config.operates_days, service.operates_days),
        operates_nights=_first_set(config.operates_nights, service.operates_nights),
        operates_weekends=service.operates_weekends,
        weekday_am_headcount=headcount(config.weekday_am_headcount),
        weekday_pm_headcount=headcount(config.weekday_pm_headcount),
        weekend_am_headcount=headcount(config.weekend_am_headcount),
        weekend_pm_headcount=headcount(config.weekend_pm_headcount),
    )
