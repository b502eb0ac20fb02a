from __future__ import annotations

import pytest

from flightops.apps.audit import models as audit_models
from flightops.apps.scheduling.lifecycle import BookingStatus
from flightops.apps.workflow import WORKFLOWS, TransitionError, allowed_targets, apply_transition

TENANT = "tenant-wf"


def test_apply_transition_records_audit_event(db_session):
    apply_transition(
        db_session,
        actor_user_id="instructor-1",
        entity_type="booking",
        entity_id="booking-1",
        from_state="briefing",
        to_state="checkout",
        before_obj={"status": "briefing", "tenant_id": TENANT},
        after_obj={"status": "checkout", "hobbs_start": "1234.5", "tenant_id": TENANT},
        critical=True,
    )

    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.entity_type == "booking", audit_models.AuditEvent.action == "transition")
        .first()
    )
    assert event is not None
    assert event.tenant_id == TENANT
    assert event.actor_user_id == "instructor-1"
    assert event.after["hobbs_start"] == "1234.5"
    assert "tenant_id" not in event.after


def test_apply_transition_rejects_checkout_without_readings(db_session):
    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor_user_id=None,
            entity_type="booking",
            entity_id="booking-1",
            from_state="confirmed",
            to_state="checkout",
            before_obj={"status": "confirmed"},
            after_obj={"status": "checkout", "hobbs_start": None, "tach_start": None},
            tenant_id=TENANT,
        )

    assert excinfo.value.code == "missing_requirements"
    assert excinfo.value.status_code == 400
    assert [item["field"] for item in excinfo.value.detail] == ["hobbs_start"]


def test_checkin_guard_checks_every_started_meter(db_session):
    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor_user_id=None,
            entity_type="booking",
            entity_id="booking-1",
            from_state="flying",
            to_state="checkin",
            before_obj={"status": "flying"},
            after_obj={
                "status": "checkin",
                "hobbs_start": 100.0,
                "hobbs_end": 99.5,
                "tach_start": 50.0,
                "tach_end": None,
            },
            tenant_id=TENANT,
        )

    assert {item["field"] for item in excinfo.value.detail} == {"hobbs_end", "tach_end"}


def test_apply_transition_rejects_invalid_transition(db_session):
    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor_user_id=None,
            entity_type="booking",
            entity_id="booking-1",
            from_state="cancelled",
            to_state="confirmed",
            before_obj={"status": "cancelled"},
            after_obj={"status": "confirmed"},
            tenant_id=TENANT,
        )

    assert excinfo.value.code == "invalid_transition"
    assert excinfo.value.status_code == 409
    assert excinfo.value.detail[0]["reason"].endswith("allowed: none")


def test_checkin_to_complete_requires_approval(db_session):
    with pytest.raises(TransitionError):
        apply_transition(
            db_session,
            actor_user_id=None,
            entity_type="booking",
            entity_id="booking-1",
            from_state="checkin",
            to_state="complete",
            before_obj={"status": "checkin"},
            after_obj={"status": "complete"},
            tenant_id=TENANT,
        )


def test_booking_workflow_covers_every_status():
    transitions = WORKFLOWS["booking"]["transitions"]
    assert set(transitions) == {status.value for status in BookingStatus}
    for targets in transitions.values():
        assert set(targets) <= {status.value for status in BookingStatus}


def test_cancellation_reachability():
    for status in BookingStatus:
        cancellable = "cancelled" in allowed_targets("booking", status.value)
        assert cancellable is (status is not BookingStatus.CANCELLED)


def test_invalid_transition_lists_allowed_targets(db_session):
    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor_user_id=None,
            entity_type="booking",
            entity_id="booking-1",
            from_state="complete",
            to_state="flying",
            before_obj={"status": "complete"},
            after_obj={"status": "flying"},
            tenant_id=TENANT,
        )

    assert excinfo.value.detail[0]["reason"].endswith("allowed: cancelled, debrief")
