"""
Rows the engine writes for collaborators: alerts, notifications, audit log.

Delivery is someone else's job; these helpers only persist. They never
commit: they always run inside the caller's transaction so a rolled-back
operation leaves no orphaned alert or notification behind.
"""
import json
import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy.orm import Session

from cmms.models.activity import Alert, AuditLog, Notification
from cmms.models.employee import Employee
from cmms.models.enums import AlertSeverity, AlertType

logger = logging.getLogger(__name__)


def create_alert(
    db: Session,
    *,
    company_id: int,
    alert_type: AlertType,
    severity: AlertSeverity,
    title: str,
    message: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[Any] = None,
) -> Alert:
    alert = Alert(
        company_id=int(company_id),
        type=alert_type.value,
        severity=severity.value,
        title=title,
        message=message,
        reference_type=reference_type,
        reference_id=None if reference_id is None else str(reference_id),
        is_resolved=False,
    )
    db.add(alert)
    db.flush()

    log = logger.error if severity == AlertSeverity.CRITICAL else logger.warning
    log(
        "Alert raised",
        extra={
            "alert_id": alert.id,
            "alert_type": alert.type,
            "severity": alert.severity,
            "company_id": alert.company_id,
            "reference_id": alert.reference_id,
        },
    )
    return alert


def notify_users(
    db: Session,
    user_ids: Iterable[int],
    *,
    title: str,
    message: str,
    notification_type: str,
    reference_id: Optional[Any] = None,
) -> List[Notification]:
    rows = []
    for user_id in sorted(set(int(u) for u in user_ids)):
        row = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=notification_type,
            reference_id=None if reference_id is None else str(reference_id),
        )
        db.add(row)
        rows.append(row)
    db.flush()
    return rows


def notify_roles(
    db: Session,
    company_id: int,
    roles: Iterable[str],
    *,
    title: str,
    message: str,
    notification_type: str,
    reference_id: Optional[Any] = None,
) -> List[Notification]:
    role_values = [getattr(r, "value", r) for r in roles]
    recipients = (
        db.query(Employee.id)
        .filter(
            Employee.company_id == int(company_id),
            Employee.role.in_(role_values),
            Employee.is_active.is_(True),
        )
        .all()
    )
    return notify_users(
        db,
        [r.id for r in recipients],
        title=title,
        message=message,
        notification_type=notification_type,
        reference_id=reference_id,
    )


def write_audit_log(
    db: Session,
    *,
    company_id: Optional[int],
    user_id: Optional[int],
    action: str,
    entity: str,
    entity_id: Any,
    new_value: Optional[dict] = None,
) -> AuditLog:
    row = AuditLog(
        company_id=company_id,
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id),
        new_value=None if new_value is None else json.dumps(new_value, sort_keys=True, default=str),
    )
    db.add(row)
    db.flush()
    return row
