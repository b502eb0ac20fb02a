from __future__ import annotations

from datetime import date, datetime, time, timezone

from flightops.apps.scheduling.roster import (
    Liveness,
    instructor_availability_map,
    is_available_at,
    rostered_instructors_for,
    rule_liveness,
    scheduler_weekday,
)

# 2026-01-07 is a Wednesday (scheduler weekday 3).
WEDNESDAY = date(2026, 1, 7)


def _rule(instructor_id="ins-1", **overrides):
    rule = {
        "instructor_id": instructor_id,
        "day_of_week": 3,
        "start_time": "07:30",
        "end_time": "22:00",
        "effective_from": date(2026, 1, 1),
        "effective_until": None,
        "is_active": True,
        "voided_at": None,
    }
    rule.update(overrides)
    return rule


def test_scheduler_weekday_starts_on_sunday():
    assert scheduler_weekday(date(2026, 1, 4)) == 0
    assert scheduler_weekday(WEDNESDAY) == 3
    assert scheduler_weekday(date(2026, 1, 10)) == 6


def test_rule_covers_slots_inside_and_ending_at_shift_end():
    rules = [_rule()]

    assert rostered_instructors_for(rules, WEDNESDAY, "11:00", "12:00") == {"ins-1"}
    assert rostered_instructors_for(rules, WEDNESDAY, "20:00", "22:00") == {"ins-1"}
    assert rostered_instructors_for(rules, WEDNESDAY, "07:30", "22:00") == {"ins-1"}


def test_slot_spilling_past_the_shift_is_not_covered():
    rules = [_rule()]

    assert rostered_instructors_for(rules, WEDNESDAY, "21:00", "22:30") == set()
    assert rostered_instructors_for(rules, WEDNESDAY, "07:00", "08:00") == set()


def test_inactive_voided_and_wrong_day_rules_are_ignored():
    rules = [
        _rule("inactive", is_active=False),
        _rule("voided", voided_at=datetime(2026, 1, 2, tzinfo=timezone.utc)),
        _rule("thursday", day_of_week=4),
        _rule("live"),
    ]

    assert rostered_instructors_for(rules, WEDNESDAY, "11:00", "12:00") == {"live"}


def test_effective_range_is_inclusive():
    rules = [
        _rule("future", effective_from=date(2026, 1, 8)),
        _rule("expired", effective_until=date(2026, 1, 6)),
        _rule("last-day", effective_until=WEDNESDAY),
        _rule("first-day", effective_from=WEDNESDAY),
    ]

    assert rostered_instructors_for(rules, WEDNESDAY, "11:00", "12:00") == {"last-day", "first-day"}


def test_split_shifts_do_not_combine():
    rules = [
        _rule(start_time="08:00", end_time="12:00"),
        _rule(start_time="12:00", end_time="17:00"),
    ]

    assert rostered_instructors_for(rules, WEDNESDAY, "09:00", "11:00") == {"ins-1"}
    assert rostered_instructors_for(rules, WEDNESDAY, "11:00", "13:00") == set()


def test_malformed_stored_rule_is_skipped():
    rules = [_rule("broken", start_time="25:00"), _rule("ok")]

    assert rostered_instructors_for(rules, WEDNESDAY, "11:00", "12:00") == {"ok"}


def test_proposal_crossing_midnight_is_never_covered():
    rules = [_rule(start_time="00:00", end_time="23:59")]

    assert rostered_instructors_for(rules, WEDNESDAY, "23:00", "01:00") == set()


def test_accepts_time_objects_from_orm_rows():
    rules = [_rule(start_time=time(7, 30), end_time=time(22, 0))]

    assert rostered_instructors_for(rules, WEDNESDAY, time(11, 0), time(12, 0)) == {"ins-1"}


def test_availability_map_is_sorted_and_end_exclusive():
    rules = [
        _rule(start_time="13:00", end_time="17:00"),
        _rule(start_time="08:00", end_time="12:00"),
        _rule("other", start_time="09:00", end_time="10:00", is_active=False),
    ]

    availability = instructor_availability_map(rules, WEDNESDAY)

    assert list(availability) == ["ins-1"]
    assert [str(w) for w in availability["ins-1"]] == ["08:00-12:00", "13:00-17:00"]
    assert is_available_at(availability, "ins-1", 8 * 60)
    assert is_available_at(availability, "ins-1", 12 * 60 - 1)
    assert not is_available_at(availability, "ins-1", 12 * 60)
    assert not is_available_at(availability, "other", 9 * 60 + 30)


def test_rule_liveness():
    assert rule_liveness(_rule()) is Liveness.ACTIVE
    assert rule_liveness(_rule(is_active=False)) is Liveness.INACTIVE
    assert rule_liveness(_rule(voided_at=datetime.now(timezone.utc))) is Liveness.VOIDED
