import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from cmms.core.authorization import Role, require_role
from cmms.core.clock import Clock
from cmms.database import SessionLocal
from cmms.deps.auth import actor_id, company_scope
from cmms.deps.clock import get_clock
from cmms.models.activity import Alert
from cmms.models.enums import AlertSeverity, AlertType
from cmms.schemas.alert import AlertResponse
from cmms.services.side_effects import write_audit_log

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["Alerts"])


def _load_alert(db: Session, alert_id: int, company_id: int) -> Alert:
    row = (
        db.query(Alert)
        .filter(Alert.id == int(alert_id), Alert.company_id == int(company_id))
        .first()
    )
    if row is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return row


@router.get("", response_model=List[AlertResponse])
def list_alerts(
    request: Request,
    alert_type: Optional[AlertType] = Query(default=None, alias="type"),
    severity: Optional[AlertSeverity] = Query(default=None),
    unresolved_only: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    _role=Depends(require_role(Role.SUPERVISOR)),
):
    db = SessionLocal()
    try:
        q = db.query(Alert).filter(Alert.company_id == company_scope(request))
        if alert_type is not None:
            q = q.filter(Alert.type == alert_type.value)
        if severity is not None:
            q = q.filter(Alert.severity == severity.value)
        if unresolved_only:
            q = q.filter(Alert.is_resolved.is_(False))
        return q.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit).all()
    finally:
        db.close()


@router.post("/{alert_id}/resolve", response_model=AlertResponse)
def resolve_alert(
    alert_id: int,
    request: Request,
    _role=Depends(require_role(Role.SUPERVISOR)),
    clock: Clock = Depends(get_clock),
):
    """Mark an alert handled. Resolving twice keeps the first resolution."""
    db = SessionLocal()
    try:
        row = _load_alert(db, alert_id, company_scope(request))
        if row.is_resolved:
            return row

        row.is_resolved = True
        row.resolved_at = clock.now()
        row.resolved_by_id = actor_id(request)
        write_audit_log(
            db,
            company_id=row.company_id,
            user_id=row.resolved_by_id,
            action="RESOLVE",
            entity="Alert",
            entity_id=row.id,
            new_value={"type": row.type, "severity": row.severity},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    logger.info(
        "Alert resolved",
        extra={"alert_id": row.id, "company_id": row.company_id, "resolved_by_id": row.resolved_by_id},
    )
    return row
