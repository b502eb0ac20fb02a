from __future__ import annotations

from decimal import Decimal

import pytest

from flightops.apps.scheduling.lifecycle import (
    BookingStatus,
    STAGE_IDS,
    billing_hours_for,
    booking_progress,
    compute_flight_times,
    declared_stages,
    parse_status,
    stage_for_status,
)
from flightops.errors import TransitionError, UnknownStatus


@pytest.mark.parametrize("status", list(BookingStatus))
def test_every_declared_status_maps_to_a_stage_or_cancelled(status):
    stage = stage_for_status(status)
    if status is BookingStatus.CANCELLED:
        assert stage is None
    else:
        assert stage in STAGE_IDS


@pytest.mark.parametrize(
    "status, stage",
    [
        ("unconfirmed", "briefing"),
        ("confirmed", "briefing"),
        ("briefing", "briefing"),
        ("checkout", "checkout"),
        ("flying", "flying"),
        ("checkin", "checkin"),
        ("complete", "debrief"),
        ("debrief", "debrief"),
    ],
)
def test_stage_for_status(status, stage):
    assert stage_for_status(status) == stage


def test_parse_status_normalises_case_and_whitespace():
    assert parse_status(" Flying ") is BookingStatus.FLYING


@pytest.mark.parametrize("value", ["taxiing", "", None, "cancel"])
def test_unknown_status_is_a_data_defect(value):
    with pytest.raises(UnknownStatus) as excinfo:
        stage_for_status(value)

    assert excinfo.value.status_code == 500
    assert excinfo.value.code == "unknown_status"


def test_progress_marks_earlier_stages_complete():
    progress = booking_progress("flying")

    assert progress.active_stage_id == "flying"
    assert progress.completed_stage_ids == ("briefing", "checkout")
    assert not progress.cancelled

    assert booking_progress("unconfirmed").completed_stage_ids == ()
    assert booking_progress("complete").completed_stage_ids == ("briefing", "checkout", "flying", "checkin")


def test_cancelled_progress_has_no_active_stage():
    progress = booking_progress(BookingStatus.CANCELLED)

    assert progress.cancelled
    assert progress.active_stage_id is None
    assert progress.completed_stage_ids == ()


def test_declared_stages_order():
    assert [stage["id"] for stage in declared_stages()] == ["briefing", "checkout", "flying", "checkin", "debrief"]


def test_compute_flight_times_per_meter():
    times = compute_flight_times(
        {
            "hobbs_start": Decimal("1000.0"),
            "hobbs_end": Decimal("1001.34"),
            "tach_start": "500.0",
            "tach_end": "501.05",
            "airswitch_start": None,
            "airswitch_end": None,
        }
    )

    assert times == {
        "flight_time_hobbs": Decimal("1.3"),
        "flight_time_tach": Decimal("1.1"),
        "flight_time_airswitch": None,
    }


def test_compute_flight_times_rejects_running_backwards():
    with pytest.raises(TransitionError) as excinfo:
        compute_flight_times({"hobbs_start": 1001, "hobbs_end": 1000})

    assert excinfo.value.code == "missing_requirements"
    assert excinfo.value.detail[0]["field"] == "hobbs_end"


def test_billing_hours_follow_the_basis_meter():
    times = {"flight_time_hobbs": Decimal("1.3"), "flight_time_tach": Decimal("1.1"), "flight_time_airswitch": None}

    assert billing_hours_for("hobbs", times) == Decimal("1.3")
    assert billing_hours_for("tacho", times) == Decimal("1.1")
    assert billing_hours_for("airswitch", times) is None
    with pytest.raises(TransitionError):
        billing_hours_for("stopwatch", times)
