from __future__ import annotations

import pytest

from flightops.apps.audit import models as audit_models
from flightops.apps.audit import services as audit_services

TENANT = "tenant-audit"


def test_log_event_writes_record(db_session):
    event = audit_services.log_event(
        db_session,
        tenant_id=TENANT,
        actor_user_id="user-1",
        entity_type="booking",
        entity_id="booking-1",
        action="cancel",
        after={"status": "cancelled"},
        metadata={"module": "scheduling"},
    )

    db_session.commit()
    assert event is not None
    assert event.entity_type == "booking"
    assert event.metadata_json == {"module": "scheduling"}


def test_list_audit_events_is_tenant_scoped(db_session):
    for tenant in (TENANT, "other-tenant"):
        audit_services.log_event(
            db_session,
            tenant_id=tenant,
            actor_user_id=None,
            entity_type="invoice",
            entity_id="inv-1",
            action="payment",
        )
    db_session.commit()

    events = audit_services.list_audit_events(db_session, tenant_id=TENANT, entity_type="invoice")
    assert len(events) == 1
    assert events[0].tenant_id == TENANT


def test_log_event_swallows_failure_unless_critical(db_session, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(audit_services, "create_audit_event", _boom)

    assert (
        audit_services.log_event(
            db_session,
            tenant_id=TENANT,
            actor_user_id=None,
            entity_type="booking",
            entity_id="booking-2",
            action="update",
        )
        is None
    )
    with pytest.raises(RuntimeError):
        audit_services.log_event(
            db_session,
            tenant_id=TENANT,
            actor_user_id=None,
            entity_type="booking",
            entity_id="booking-2",
            action="transition",
            critical=True,
        )
    assert db_session.query(audit_models.AuditEvent).count() == 0
