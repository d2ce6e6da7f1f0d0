import datetime as dt

import pytest

from strikeplan.errors import ValidationFailedError
from strikeplan.headcount import (
    MIN_SAFE_HEADCOUNT,
    calculate_scenario_headcount,
    date_range,
    generate_job_code,
    is_weekend,
    resolve_shift_config,
)
from strikeplan.models import Service, ServiceJobTypeConfig, ShiftType


@pytest.mark.parametrize("original", [0, 1, 4, 17])
def test_zero_reduction_keeps_headcount(original: int) -> None:
    assert calculate_scenario_headcount(original, 0) == original


@pytest.mark.parametrize(
    "original, percent, expected",
    [
        (4, 50, 2),
        (5, 50, 3),
        (10, 70, 3),
        (10, 33.3, 7),
        (3, 99, 1),
        (3, 100, 1),
        (0, 25, 1),
    ],
)
def test_reduction_rounds_up_and_floors_at_one(
    original: int, percent: float, expected: int
) -> None:
    assert calculate_scenario_headcount(original, percent) == expected


def test_any_reduction_keeps_minimum_safe_staffing() -> None:
    for original in range(0, 12):
        for percent in range(1, 101):
            result = calculate_scenario_headcount(original, percent)
            assert result >= MIN_SAFE_HEADCOUNT
            assert result <= max(original, MIN_SAFE_HEADCOUNT)


@pytest.mark.parametrize("percent", [-1, 100.5, 250])
def test_reduction_outside_range_is_rejected(percent: float) -> None:
    with pytest.raises(ValidationFailedError):
        calculate_scenario_headcount(4, percent)


def test_negative_headcount_is_rejected() -> None:
    with pytest.raises(ValidationFailedError):
        calculate_scenario_headcount(-1, 10)


def test_date_range_is_inclusive() -> None:
    days = date_range(dt.date(2025, 6, 30), dt.date(2025, 7, 2))
    assert days == [dt.date(2025, 6, 30), dt.date(2025, 7, 1), dt.date(2025, 7, 2)]
    assert date_range(dt.date(2025, 6, 1), dt.date(2025, 6, 1)) == [
        dt.date(2025, 6, 1)
    ]


def test_date_range_rejects_reversed_bounds() -> None:
    with pytest.raises(ValidationFailedError):
        date_range(dt.date(2025, 6, 2), dt.date(2025, 6, 1))


def test_weekend_detection() -> None:
    assert is_weekend(dt.date(2025, 6, 1))  # Sunday
    assert is_weekend(dt.date(2025, 5, 31))  # Saturday
    assert not is_weekend(dt.date(2025, 6, 2))


def test_job_code_uses_letters_of_department_name() -> None:
    code = generate_job_code(
        "Emergency Dept", "MAIN", "ED", "MD", dt.date(2025, 6, 2), ShiftType.AM, 3
    )
    assert code == "Emerge_MAIN_ED_MD_2025-06-02_AM_3"


def test_job_code_falls_back_when_names_missing() -> None:
    code = generate_job_code(
        "4-West / 2", None, "ICU", "RN", dt.date(2025, 6, 2), ShiftType.PM, 1
    )
    assert code == "West_HOSP_ICU_RN_2025-06-02_PM_1"
    code = generate_job_code(
        None, "MAIN", "ICU", "RN", dt.date(2025, 6, 2), ShiftType.PM, 1
    )
    assert code.startswith("DEPT_MAIN_")


def _service(**overrides) -> Service:
    fields = {
        "id": "svc",
        "department_id": "dept",
        "hospital_id": "hosp",
        "health_system_id": "hs",
        "name": "ICU",
        "short_code": "ICU",
    }
    fields.update(overrides)
    return Service(**fields)


def test_resolver_prefers_job_type_settings() -> None:
    service = _service(default_headcount=3, operates_nights=True)
    config = ServiceJobTypeConfig(
        id="cfg",
        service_id="svc",
        job_type_id="jt",
        day_shift_start="06:00",
        operates_nights=False,
        headcount=5,
        weekend_am_headcount=2,
    )
    resolved = resolve_shift_config(config, service)

    assert resolved.window(ShiftType.AM) == ("06:00", "19:00")
    assert resolved.window(ShiftType.PM) == ("19:00", "07:00")
    assert resolved.operates(ShiftType.AM, weekend=False)
    assert not resolved.operates(ShiftType.PM, weekend=False)
    assert resolved.headcount(ShiftType.AM, weekend=False) == 5
    assert resolved.headcount(ShiftType.AM, weekend=True) == 2
    assert resolved.headcount(ShiftType.PM, weekend=True) == 5


def test_resolver_falls_back_to_service_defaults() -> None:
    service = _service(default_headcount=3, operates_weekends=False)
    config = ServiceJobTypeConfig(id="cfg", service_id="svc", job_type_id="jt")
    resolved = resolve_shift_config(config, service)

    assert resolved.headcount(ShiftType.PM, weekend=False) == 3
    assert resolved.operates(ShiftType.AM, weekend=False)
    assert not resolved.operates(ShiftType.AM, weekend=True)
    assert not resolved.operates(ShiftType.PM, weekend=True)
