from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from flightops.apps.audit import services as audit_services
from flightops.errors import TransitionError

from .registry import WORKFLOWS


def _extract_tenant_id(before_obj: Any, after_obj: Any) -> Optional[str]:
    for obj in (after_obj, before_obj):
        if isinstance(obj, dict) and obj.get("tenant_id"):
            return obj.get("tenant_id")
        tenant_id = getattr(obj, "tenant_id", None)
        if tenant_id:
            return tenant_id
    return None


def allowed_targets(entity_type: str, from_state: str) -> List[str]:
    workflow = WORKFLOWS.get(entity_type) or {}
    return sorted(workflow.get("transitions", {}).get(from_state, {}))


def apply_transition(
    db: Session,
    *,
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: str,
    from_state: str,
    to_state: str,
    before_obj: Any,
    after_obj: Any,
    tenant_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    critical: bool = True,
) -> None:
    workflow = WORKFLOWS.get(entity_type)
    if not workflow:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "entity_type", "reason": f"No workflow registered for {entity_type}"}],
        )

    transitions = workflow.get("transitions", {})
    allowed = transitions.get(from_state, {})
    guards = allowed.get(to_state)

    if guards is None:
        targets = allowed_targets(entity_type, from_state)
        raise TransitionError(
            code="invalid_transition",
            detail=[
                {
                    "field": "status",
                    "reason": f"Cannot transition from {from_state} to {to_state}; "
                    f"allowed: {', '.join(targets) or 'none'}",
                }
            ],
        )

    failures: List[Dict[str, str]] = []
    for guard in guards:
        failures.extend(
            guard(
                db,
                before_obj=before_obj,
                after_obj=after_obj,
                from_state=from_state,
                to_state=to_state,
            )
        )

    if failures:
        raise TransitionError(code="missing_requirements", detail=failures)

    before_payload: Dict[str, Any] = {"status": from_state}
    after_payload: Dict[str, Any] = {"status": to_state}
    if isinstance(before_obj, dict):
        before_payload.update({k: v for k, v in before_obj.items() if k != "tenant_id"})
    if isinstance(after_obj, dict):
        after_payload.update({k: v for k, v in after_obj.items() if k != "tenant_id"})

    tenant_id = tenant_id or _extract_tenant_id(before_obj, after_obj)
    if not tenant_id:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "tenant_id", "reason": "Unable to resolve tenant for transition"}],
        )

    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action="transition",
        before=before_payload,
        after=after_payload,
        correlation_id=correlation_id,
        metadata={"workflow": entity_type},
        critical=critical,
    )
